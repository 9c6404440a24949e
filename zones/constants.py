"""
Fixed map rendering constants - no user configuration.
"""

# =============================================================================
# Colors
# =============================================================================
UNASSIGNED_COLOR = "#94a3b8"
SELECTED_COLOR = "#facc15"
MIXED_COLOR = "#8b5cf6"
MARKER_COLOR = "#ef4444"

# =============================================================================
# Line styles
# =============================================================================
DEFAULT_WEIGHT = 5
SELECTED_WEIGHT = 7
DEFAULT_OPACITY = 0.7
SELECTED_OPACITY = 1.0

# =============================================================================
# Geometry
# =============================================================================
# Even-numbered side is drawn on the negative offset, odd on the positive.
EVEN_SIDE_OFFSET_METERS = -8.0
ODD_SIDE_OFFSET_METERS = 8.0
FIT_BOUNDS_PADDING = 0.1

# =============================================================================
# Selection / cutting
# =============================================================================
SCOPE_SEGMENTS = "segments"
SCOPE_STREETS = "streets"
SELECTION_SCOPES = (SCOPE_SEGMENTS, SCOPE_STREETS)

# Target-zone choice that clears the assignment.
UNASSIGN_TARGET = "none"

CUT_SEGMENT_SIDE = "both"
CUT_SEGMENT_BUILDING_TYPE = "mixed"
CUT_SEGMENT_LABEL = "Segment {index}"
