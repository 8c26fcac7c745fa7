"""
Default constants for the drawing core.

Values here are module-level so that :func:`cad_drawing.project_config.apply_config_to_globals`
can override them from a project file. Engines read them at construction
time, so changes affect engines created afterwards.
"""

# Document model
DEFAULT_LAYER_ID = "default"
DEFAULT_LAYER_NAME = "0"
DEFAULT_STROKE_COLOR = "#000000"
DEFAULT_STROKE_WIDTH = 1.0
COPY_OFFSET = (10.0, 10.0)

# Hit testing (tolerance is in screen pixels, divided by zoom)
HIT_TOLERANCE_PX = 5.0
DEFAULT_ZOOM = 1.0
TEXT_WIDTH_FACTOR = 0.6
TEXT_HEIGHT_FACTOR = 1.2
DEFAULT_FONT_SIZE = 12.0

# Hatching
HATCH_BOX_MARGIN_FACTOR = 2.0   # bbox grows by this times the hatch scale
HATCH_LINE_MARGIN = 10          # extra rulings on each side
HATCH_LENGTH_FACTOR = 3.0       # ruling length relative to the larger bbox side
DEFAULT_HATCH_PATTERN = "ANSI31"
DEFAULT_HATCH_SCALE = 1.0
DEFAULT_HATCH_ANGLE = 0.0

# Associative dimensions
DIM_TOLERANCE = 0.001
DIM_AUTO_UPDATE = True
DIM_MAX_PROPAGATION_DEPTH = 32
DIM_LINEAR_DECIMALS = 2
DIM_ANGULAR_DECIMALS = 1

# Blocks
BLOCK_DEFAULT_LIBRARY_ID = "default"
BLOCK_DEFAULT_LIBRARY_NAME = "Standard Library"
BLOCK_DEFAULT_AUTHOR = "User"
BLOCK_DEFAULT_CATEGORY = "custom"

# Numerical guards
EPSILON = 1e-12
