"""
DXF export of a drawing document.

Writes layers, entities, dimensions, annotations, hatch segments and block
instances into a new ezdxf document:
- Document layers become DXF layers (visibility, lock, color, linetype)
- Rectangles and leaders become closed/open LWPOLYLINEs
- Dimensions become native DXF dimensions carrying the cached text
- Hatches are written as plain LINE segments on the HATCH layer
- Live block instances become BLOCK definitions plus INSERTs with
  ATTRIB values

Usage:
    from cad_drawing.io.dxf_export import DxfExporter

    exporter = DxfExporter()
    exporter.export(document, hatches=[hatch], block_manager=blocks)
    exporter.save('drawing.dxf')
"""

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Type, Union

import ezdxf
from ezdxf import units
from ezdxf.enums import TextEntityAlignment

from cad_drawing import config as cfg
from cad_drawing.drawing.hatching import HatchDefinition, HatchEngine
from cad_drawing.geometry.primitives import place_point
from cad_drawing.model.document import DrawingDocument
from cad_drawing.model.entities import (
    AngularDimension,
    ArcEntity,
    CircleEntity,
    DiametralDimension,
    EllipseEntity,
    Entity,
    Layer,
    LeaderAnnotation,
    LinearDimension,
    LineEntity,
    PolylineEntity,
    RadialDimension,
    RectangleEntity,
    SplineEntity,
    StrokePattern,
    TextAnnotation,
    TextEntity,
)
from cad_drawing.selection.shapes import font_size_of, rectangle_corners

logger = logging.getLogger(__name__)

# Linetypes loaded by ezdxf.new(setup=True)
PATTERN_TO_LINETYPE: Dict[StrokePattern, str] = {
    StrokePattern.SOLID: 'CONTINUOUS',
    StrokePattern.DASHED: 'DASHED',
    StrokePattern.DOTTED: 'DOT',
    StrokePattern.DASH_DOT: 'DASHDOT',
    StrokePattern.CENTER: 'CENTER',
}

HATCH_LAYER = 'HATCH'
DIMSTYLE_NAME = 'CAD'
TEXT_STYLE_NAME = 'CAD'

_INVALID_NAME_CHARS = re.compile(r'[<>/\\":;?*|=`]')
_HEX_COLOR = re.compile(r'^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


def hex_to_rgb(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """'#rrggbb' or '#rgb' to an RGB triple; None for anything else."""
    if not value or not _HEX_COLOR.match(value):
        return None
    digits = value[1:]
    if len(digits) == 3:
        digits = ''.join(c * 2 for c in digits)
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def dxf_layer_name(layer: Layer) -> str:
    """DXF-safe name for a document layer (display name, else id)."""
    name = _INVALID_NAME_CHARS.sub('_', layer.name or layer.id).strip()
    return name or layer.id


@dataclass
class DxfStyle:
    """Style parameters for DXF entities."""
    layer: str = '0'
    rgb: Optional[Tuple[int, int, int]] = None  # None = ByLayer
    linetype: Optional[str] = None  # None = ByLayer
    invisible: bool = False

    def dxfattribs(self) -> Dict[str, Any]:
        attribs: Dict[str, Any] = {'layer': self.layer}
        if self.linetype is not None:
            attribs['linetype'] = self.linetype
        if self.invisible:
            attribs['invisible'] = 1
        return attribs


class DxfExporter:
    """Drawing document to DXF using ezdxf.

    Args:
        dxf_version: DXF version (R2000, R2004, R2007, R2010, R2013, R2018)
    """

    def __init__(self, dxf_version: str = 'R2010'):
        self.dxf_version = dxf_version
        self.doc: Optional[ezdxf.document.Drawing] = None
        self.msp = None  # Modelspace
        self._layer_names: Dict[str, str] = {}
        self._writers: Dict[Type[Entity], Callable[[Any, Entity, DxfStyle], None]] = {
            LineEntity: self._write_line,
            CircleEntity: self._write_circle,
            ArcEntity: self._write_arc,
            EllipseEntity: self._write_ellipse,
            RectangleEntity: self._write_rectangle,
            PolylineEntity: self._write_polyline,
            SplineEntity: self._write_spline,
            TextEntity: self._write_text,
            LinearDimension: self._write_linear_dimension,
            AngularDimension: self._write_angular_dimension,
            RadialDimension: self._write_radial_dimension,
            DiametralDimension: self._write_diametral_dimension,
            TextAnnotation: self._write_text_annotation,
            LeaderAnnotation: self._write_leader,
        }

    # ------------------------------------------------------------------
    # Document setup
    # ------------------------------------------------------------------

    def create_drawing(self) -> None:
        """Create a new, empty DXF document with text and dimension styles."""
        self.doc = ezdxf.new(self.dxf_version, setup=True, units=units.MM)
        self.msp = self.doc.modelspace()
        self._layer_names = {}

        self.doc.styles.add(TEXT_STYLE_NAME, font='Arial')
        self._setup_dimension_style()

    def _setup_dimension_style(self) -> None:
        dimstyle = self.doc.dimstyles.new(DIMSTYLE_NAME)
        dimstyle.dxf.dimtxsty = TEXT_STYLE_NAME
        dimstyle.dxf.dimtxt = 3.5  # Text height
        dimstyle.dxf.dimgap = 1.0  # Gap from dimension line
        dimstyle.dxf.dimasz = 2.5  # Arrow size
        dimstyle.dxf.dimexe = 2.0  # Extension beyond dimension line
        dimstyle.dxf.dimexo = 1.5  # Offset from origin
        dimstyle.dxf.dimdec = cfg.DIM_LINEAR_DECIMALS

    def _require_drawing(self) -> None:
        if self.msp is None:
            raise RuntimeError("Drawing not created. Call create_drawing() first.")

    def _setup_layers(self, document: DrawingDocument) -> None:
        """Mirror the document layer table."""
        for layer in document.layers():
            name = dxf_layer_name(layer)
            if name in self._layer_names.values():
                name = f"{name}_{layer.id}"
            if name in self.doc.layers:
                dxf_layer = self.doc.layers.get(name)
            else:
                dxf_layer = self.doc.layers.add(name)

            linetype = PATTERN_TO_LINETYPE.get(layer.style.stroke_pattern, 'CONTINUOUS')
            dxf_layer.dxf.linetype = linetype
            rgb = hex_to_rgb(layer.style.stroke_color)
            if rgb is not None:
                dxf_layer.rgb = rgb
            if not layer.visible:
                dxf_layer.off()
            if layer.locked:
                dxf_layer.lock()
            self._layer_names[layer.id] = name

        if HATCH_LAYER not in self.doc.layers:
            self.doc.layers.add(HATCH_LAYER, color=8)

    def _style_for(self, document: DrawingDocument, record: Entity) -> DxfStyle:
        layer = document.resolve_layer(record.layer)
        style = DxfStyle(layer=self._layer_names.get(layer.id, '0'),
                         invisible=not record.visible)
        if not record.style.by_layer:
            style.rgb = hex_to_rgb(record.style.stroke_color)
            style.linetype = PATTERN_TO_LINETYPE.get(record.style.stroke_pattern)
        return style

    # ------------------------------------------------------------------
    # Entity writers (layout is the modelspace or a block layout)
    # ------------------------------------------------------------------

    @staticmethod
    def _finish(entity, style: DxfStyle) -> None:
        if style.rgb is not None:
            entity.rgb = style.rgb

    def _write_line(self, layout, e: LineEntity, style: DxfStyle) -> None:
        self._finish(layout.add_line(e.start.as_tuple(), e.end.as_tuple(),
                                     dxfattribs=style.dxfattribs()), style)

    def _write_circle(self, layout, e: CircleEntity, style: DxfStyle) -> None:
        self._finish(layout.add_circle(e.center.as_tuple(), e.radius,
                                       dxfattribs=style.dxfattribs()), style)

    def _write_arc(self, layout, e: ArcEntity, style: DxfStyle) -> None:
        # DXF arcs always run counter-clockwise from start to end
        start, end = math.degrees(e.start_angle), math.degrees(e.end_angle)
        if e.counterclockwise:
            start, end = end, start
        self._finish(layout.add_arc(e.center.as_tuple(), e.radius, start, end,
                                    dxfattribs=style.dxfattribs()), style)

    def _write_ellipse(self, layout, e: EllipseEntity, style: DxfStyle) -> None:
        if e.radius_x >= e.radius_y:
            major, ratio, axis_angle = e.radius_x, e.radius_y / e.radius_x, e.rotation
        else:
            major, ratio, axis_angle = e.radius_y, e.radius_x / e.radius_y, e.rotation + math.pi / 2
        major_axis = (major * math.cos(axis_angle), major * math.sin(axis_angle))
        self._finish(layout.add_ellipse(e.center.as_tuple(), major_axis=major_axis,
                                        ratio=ratio, dxfattribs=style.dxfattribs()), style)

    def _write_rectangle(self, layout, e: RectangleEntity, style: DxfStyle) -> None:
        points = [p.as_tuple() for p in rectangle_corners(e)]
        self._finish(layout.add_lwpolyline(points, close=True,
                                           dxfattribs=style.dxfattribs()), style)

    def _write_polyline(self, layout, e: PolylineEntity, style: DxfStyle) -> None:
        points = [p.as_tuple() for p in e.points]
        self._finish(layout.add_lwpolyline(points, close=e.closed,
                                           dxfattribs=style.dxfattribs()), style)

    def _write_spline(self, layout, e: SplineEntity, style: DxfStyle) -> None:
        points = [p.as_tuple() for p in e.points]
        if e.closed:
            points.append(points[0])
        self._finish(layout.add_spline(fit_points=points,
                                       dxfattribs=style.dxfattribs()), style)

    def _add_text(self, layout, content: str, position: Tuple[float, float], height: float,
                  rotation_rad: float, align: Optional[str], style: DxfStyle) -> None:
        attribs = style.dxfattribs()
        attribs.update(style=TEXT_STYLE_NAME, height=height,
                       rotation=math.degrees(rotation_rad))
        alignment = {
            'center': TextEntityAlignment.CENTER,
            'right': TextEntityAlignment.RIGHT,
        }.get(align or 'left', TextEntityAlignment.LEFT)
        text = layout.add_text(content, dxfattribs=attribs)
        text.set_placement(position, align=alignment)
        self._finish(text, style)

    def _write_text(self, layout, e: TextEntity, style: DxfStyle) -> None:
        self._add_text(layout, e.content, e.position.as_tuple(), font_size_of(e),
                       e.rotation, e.style.text_align, style)

    def _write_text_annotation(self, layout, e: TextAnnotation, style: DxfStyle) -> None:
        self._add_text(layout, e.content, e.position.as_tuple(), font_size_of(e),
                       0.0, e.style.text_align, style)

    def _write_leader(self, layout, e: LeaderAnnotation, style: DxfStyle) -> None:
        points = [e.start.as_tuple()] + [p.as_tuple() for p in e.points]
        if len(points) >= 2:
            self._finish(layout.add_lwpolyline(points, dxfattribs=style.dxfattribs()), style)
        if e.content:
            self._add_text(layout, e.content, e.anchor.as_tuple(), font_size_of(e),
                           0.0, e.style.text_align, style)

    def _render_dimension(self, dim, text: str, style: DxfStyle) -> None:
        if text:
            dim.set_text(text)
        dim.render()
        self._finish(dim.dimension, style)

    def _write_linear_dimension(self, layout, e: LinearDimension, style: DxfStyle) -> None:
        dim = layout.add_aligned_dim(
            p1=e.start.as_tuple(),
            p2=e.end.as_tuple(),
            distance=e.offset or cfg.DEFAULT_FONT_SIZE,
            dimstyle=DIMSTYLE_NAME,
            dxfattribs=style.dxfattribs(),
        )
        self._render_dimension(dim, e.text, style)

    def _write_angular_dimension(self, layout, e: AngularDimension, style: DxfStyle) -> None:
        a1 = math.atan2(e.start.y - e.vertex.y, e.start.x - e.vertex.x)
        a2 = math.atan2(e.end.y - e.vertex.y, e.end.x - e.vertex.x)
        mid = (a1 + a2) / 2
        radius = e.radius or max(e.vertex.distance_to(e.start), e.vertex.distance_to(e.end))
        base = (e.vertex.x + radius * math.cos(mid), e.vertex.y + radius * math.sin(mid))
        dim = layout.add_angular_dim_3p(
            base=base,
            center=e.vertex.as_tuple(),
            p1=e.start.as_tuple(),
            p2=e.end.as_tuple(),
            dimstyle=DIMSTYLE_NAME,
            dxfattribs=style.dxfattribs(),
        )
        self._render_dimension(dim, e.text, style)

    def _write_radial_dimension(self, layout, e: RadialDimension, style: DxfStyle) -> None:
        dim = layout.add_radius_dim(
            center=e.center.as_tuple(),
            mpoint=e.point_on_circle.as_tuple(),
            dimstyle=DIMSTYLE_NAME,
            dxfattribs=style.dxfattribs(),
        )
        self._render_dimension(dim, e.text, style)

    def _write_diametral_dimension(self, layout, e: DiametralDimension, style: DxfStyle) -> None:
        dim = layout.add_diameter_dim(
            center=e.center.as_tuple(),
            mpoint=e.point_on_circle.as_tuple(),
            dimstyle=DIMSTYLE_NAME,
            dxfattribs=style.dxfattribs(),
        )
        self._render_dimension(dim, e.text, style)

    @staticmethod
    def _is_exportable(record: Entity) -> bool:
        """Skip shapes DXF cannot represent (zero radius, too few points)."""
        if isinstance(record, (CircleEntity, ArcEntity)):
            return record.radius > 0
        if isinstance(record, EllipseEntity):
            return record.radius_x > 0 and record.radius_y > 0
        if isinstance(record, SplineEntity):
            return len(record.points) >= 2
        if isinstance(record, PolylineEntity):
            return len(record.points) >= 2
        if isinstance(record, LinearDimension):
            return record.start != record.end
        if isinstance(record, (RadialDimension, DiametralDimension)):
            return record.center != record.point_on_circle
        if isinstance(record, AngularDimension):
            return record.start != record.vertex and record.end != record.vertex
        return True

    def add_record(self, record: Entity, style: DxfStyle, layout=None) -> bool:
        """Write one record; returns False if it was skipped."""
        self._require_drawing()
        writer = self._writers.get(type(record))
        if writer is None or not self._is_exportable(record):
            logger.debug("Skipped %s %s in DXF export", record.kind, record.id)
            return False
        writer(self.msp if layout is None else layout, record, style)
        return True

    # ------------------------------------------------------------------
    # Hatches and blocks
    # ------------------------------------------------------------------

    def add_hatch(self, definition: HatchDefinition, engine: Optional[HatchEngine] = None) -> int:
        """Write a hatch as LINE segments; returns the segment count."""
        self._require_drawing()
        engine = engine or HatchEngine()
        style = DxfStyle(layer=HATCH_LAYER, rgb=hex_to_rgb(definition.style.stroke_color))
        segments = engine.generate_for_definition(definition)
        for segment in segments:
            self._write_line(self.msp, LineEntity(start=segment[0], end=segment[-1]), style)
        return len(segments)

    def add_block_instances(self, document: DrawingDocument, block_manager) -> int:
        """Write every live instance as an INSERT of a DXF block."""
        self._require_drawing()
        written_blocks: Dict[str, str] = {}
        count = 0

        for instance in block_manager.get_all_block_instances():
            if instance.exploded or not instance.visible:
                continue
            definition = block_manager.get_block_definition(instance.block_definition_id)
            if definition is None:
                continue

            block_name = written_blocks.get(definition.id)
            if block_name is None:
                block_name = _INVALID_NAME_CHARS.sub('_', definition.id)
                block = self.doc.blocks.new(name=block_name,
                                            base_point=definition.insertion_point.as_tuple())
                for template in definition.entities:
                    self.add_record(template, self._style_for(document, template), layout=block)
                written_blocks[definition.id] = block_name

            layer = document.resolve_layer(instance.layer)
            sx, sy = instance.scale
            insert = self.msp.add_blockref(block_name, instance.insertion_point.as_tuple(), dxfattribs={
                'layer': self._layer_names.get(layer.id, '0'),
                'xscale': sx,
                'yscale': sy,
                'rotation': math.degrees(instance.rotation),
            })
            for attribute in definition.attributes:
                if not attribute.visible:
                    continue
                value = instance.attributes.get(attribute.tag, attribute.initial_value)
                position = place_point(attribute.position - definition.insertion_point,
                                       instance.insertion_point, sx, sy, instance.rotation)
                insert.add_attrib(attribute.tag, value, position.as_tuple())
            count += 1

        return count

    # ------------------------------------------------------------------
    # Whole-document export
    # ------------------------------------------------------------------

    def export(
        self,
        document: DrawingDocument,
        hatches: Sequence[HatchDefinition] = (),
        block_manager=None,
        hatch_engine: Optional[HatchEngine] = None,
    ) -> 'ezdxf.document.Drawing':
        """Write a whole document into a fresh DXF drawing.

        Records are written in :meth:`DrawingDocument.render_order`, so
        hidden layers are left out.

        Returns:
            The ezdxf document (also kept on ``self.doc``)
        """
        self.create_drawing()
        self._setup_layers(document)

        written = 0
        for record in document.render_order():
            if self.add_record(record, self._style_for(document, record)):
                written += 1

        segments = sum(self.add_hatch(h, hatch_engine) for h in hatches)
        inserts = self.add_block_instances(document, block_manager) if block_manager else 0

        logger.info("DXF export: %d records, %d hatch segments, %d block inserts",
                    written, segments, inserts)
        return self.doc

    def save(self, path: Union[str, Path]) -> None:
        """Save drawing to DXF file.

        Args:
            path: Output file path
        """
        if self.doc is None:
            raise RuntimeError("Drawing not created. Call create_drawing() first.")

        path = Path(path)
        self.doc.saveas(str(path))
        logger.info("DXF saved: %s", path)


def export_document_to_dxf(
    document: DrawingDocument,
    output_path: Union[str, Path],
    hatches: Sequence[HatchDefinition] = (),
    block_manager=None,
    dxf_version: str = 'R2010',
) -> None:
    """Convenience wrapper: export ``document`` and save it to ``output_path``."""
    exporter = DxfExporter(dxf_version)
    exporter.export(document, hatches=hatches, block_manager=block_manager)
    exporter.save(output_path)
