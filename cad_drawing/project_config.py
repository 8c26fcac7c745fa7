"""
JSON project configuration for cad_drawing.

Defaults from config.py can be overridden by a ``.cad_drawing.json`` file.

Search order for the file:
1. Explicit path given by the host application
2. The drawing file's directory
3. The current working directory
4. The user's home directory

Example .cad_drawing.json:
{
    "document": {
        "default_layer_name": "0",
        "stroke_width": 0.5
    },
    "hit_test": {
        "tolerance_px": 4.0,
        "default_font_size": 10.0
    },
    "hatching": {
        "default_pattern": "ANSI32",
        "scale": 2.0
    },
    "dimensions": {
        "tolerance": 0.01,
        "auto_update": true
    },
    "blocks": {
        "load_standard_library": true,
        "default_author": "Drafting Office"
    }
}
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cad_drawing import config as cfg

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".cad_drawing.json"


@dataclass
class DocumentConfig:
    """Document model defaults."""
    default_layer_name: str = cfg.DEFAULT_LAYER_NAME
    stroke_color: str = cfg.DEFAULT_STROKE_COLOR
    stroke_width: float = cfg.DEFAULT_STROKE_WIDTH


@dataclass
class HitTestConfig:
    """Selection tolerances."""
    tolerance_px: float = cfg.HIT_TOLERANCE_PX
    text_width_factor: float = cfg.TEXT_WIDTH_FACTOR
    default_font_size: float = cfg.DEFAULT_FONT_SIZE


@dataclass
class HatchingConfig:
    """Defaults applied to new hatches."""
    default_pattern: str = cfg.DEFAULT_HATCH_PATTERN
    scale: float = cfg.DEFAULT_HATCH_SCALE
    angle_deg: float = cfg.DEFAULT_HATCH_ANGLE


@dataclass
class DimensionsConfig:
    """Associative dimension engine settings."""
    tolerance: float = cfg.DIM_TOLERANCE
    auto_update: bool = cfg.DIM_AUTO_UPDATE
    max_propagation_depth: int = cfg.DIM_MAX_PROPAGATION_DEPTH
    linear_decimals: int = cfg.DIM_LINEAR_DECIMALS
    angular_decimals: int = cfg.DIM_ANGULAR_DECIMALS


@dataclass
class BlocksConfig:
    """Block library settings."""
    load_standard_library: bool = True
    default_author: str = cfg.BLOCK_DEFAULT_AUTHOR
    default_category: str = cfg.BLOCK_DEFAULT_CATEGORY


_SECTIONS = {
    'document': DocumentConfig,
    'hit_test': HitTestConfig,
    'hatching': HatchingConfig,
    'dimensions': DimensionsConfig,
    'blocks': BlocksConfig,
}


@dataclass
class ProjectConfig:
    """Complete project configuration."""
    document: DocumentConfig = field(default_factory=DocumentConfig)
    hit_test: HitTestConfig = field(default_factory=HitTestConfig)
    hatching: HatchingConfig = field(default_factory=HatchingConfig)
    dimensions: DimensionsConfig = field(default_factory=DimensionsConfig)
    blocks: BlocksConfig = field(default_factory=BlocksConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def save(self, path: Union[str, Path]) -> None:
        """Write configuration to a JSON file."""
        path = Path(path)
        path.write_text(self.to_json(), encoding='utf-8')
        logger.info("Configuration saved to %s", path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectConfig':
        """Build a configuration from a dictionary.

        Unknown sections and keys are ignored, keys starting with an
        underscore (comments) included.

        Args:
            data: Parsed JSON document

        Returns:
            ProjectConfig instance
        """
        config = cls()
        for section_name in _SECTIONS:
            values = data.get(section_name)
            if not isinstance(values, dict):
                continue
            section = getattr(config, section_name)
            for key, value in values.items():
                if hasattr(section, key):
                    setattr(section, key, value)
                elif not key.startswith('_'):
                    logger.debug("Ignoring unknown config key %s.%s", section_name, key)
        return config

    @classmethod
    def from_json(cls, json_str: str) -> 'ProjectConfig':
        """Build a configuration from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'ProjectConfig':
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            json.JSONDecodeError: If the file is not valid JSON
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info("Configuration loaded from %s", path)
        return cls.from_dict(data)


def find_config_file(
    drawing_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Locate a configuration file.

    Args:
        drawing_path: Drawing file being opened, if any
        explicit_config: Path requested by the caller

    Returns:
        First existing candidate, or None
    """
    if explicit_config:
        explicit = Path(explicit_config)
        if explicit.exists():
            return explicit
        logger.warning("Explicit config not found: %s", explicit)

    candidates = []
    if drawing_path:
        candidates.append(Path(drawing_path).parent / CONFIG_FILENAME)
    candidates.append(Path.cwd() / CONFIG_FILENAME)
    candidates.append(Path.home() / CONFIG_FILENAME)

    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_config(
    drawing_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> ProjectConfig:
    """Load the configuration found by :func:`find_config_file`.

    A missing or unreadable file yields the defaults.
    """
    config_path = find_config_file(drawing_path, explicit_config)

    if config_path:
        try:
            return ProjectConfig.load(config_path)
        except (json.JSONDecodeError, IOError) as e:
            logger.error("Failed to load config %s: %s", config_path, e)

    return ProjectConfig()


def merge_configs(base: ProjectConfig, override: ProjectConfig) -> ProjectConfig:
    """Merge two configurations.

    Only values in ``override`` that differ from the built-in defaults are
    applied on top of ``base``.
    """
    merged = ProjectConfig.from_dict(base.to_dict())

    for section_name, section_cls in _SECTIONS.items():
        defaults = section_cls()
        source = getattr(override, section_name)
        target = getattr(merged, section_name)
        for f in fields(section_cls):
            value = getattr(source, f.name)
            if value != getattr(defaults, f.name):
                setattr(target, f.name, value)

    return merged


def apply_config_to_globals(config: ProjectConfig) -> None:
    """Copy configuration values into the ``cad_drawing.config`` module.

    Engines created after this call pick up the new defaults.
    """
    cfg.DEFAULT_LAYER_NAME = config.document.default_layer_name
    cfg.DEFAULT_STROKE_COLOR = config.document.stroke_color
    cfg.DEFAULT_STROKE_WIDTH = config.document.stroke_width

    cfg.HIT_TOLERANCE_PX = config.hit_test.tolerance_px
    cfg.TEXT_WIDTH_FACTOR = config.hit_test.text_width_factor
    cfg.DEFAULT_FONT_SIZE = config.hit_test.default_font_size

    cfg.DEFAULT_HATCH_PATTERN = config.hatching.default_pattern
    cfg.DEFAULT_HATCH_SCALE = config.hatching.scale
    cfg.DEFAULT_HATCH_ANGLE = config.hatching.angle_deg

    cfg.DIM_TOLERANCE = config.dimensions.tolerance
    cfg.DIM_AUTO_UPDATE = config.dimensions.auto_update
    cfg.DIM_MAX_PROPAGATION_DEPTH = config.dimensions.max_propagation_depth
    cfg.DIM_LINEAR_DECIMALS = config.dimensions.linear_decimals
    cfg.DIM_ANGULAR_DECIMALS = config.dimensions.angular_decimals

    cfg.BLOCK_DEFAULT_AUTHOR = config.blocks.default_author
    cfg.BLOCK_DEFAULT_CATEGORY = config.blocks.default_category

    logger.debug("Applied project config to global constants")


def create_sample_config(path: Union[str, Path] = CONFIG_FILENAME) -> None:
    """Write a commented sample configuration file."""
    sample: Dict[str, Any] = {
        "_comment": "cad_drawing project configuration",
        "_version": "1.0",
    }
    notes = {
        'document': "Default layer and stroke settings",
        'hit_test': "Pick tolerance in screen pixels and text extent estimate",
        'hatching': "Pattern applied to new hatches",
        'dimensions': "Associative dimension reconciliation",
        'blocks': "Block library defaults",
    }
    defaults = ProjectConfig().to_dict()
    for section_name, values in defaults.items():
        sample[section_name] = {"_comment": notes[section_name], **values}

    path = Path(path)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(sample, f, indent=2, ensure_ascii=False)

    logger.info("Sample configuration created: %s", path)
