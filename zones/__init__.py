"""Zones package - interactive assignment of streets and segments to districts.

Key modules:
    - constants: Fixed rendering constants (colors, weights, side offsets)
    - repository: Street/segment/district reads and writes
    - rendering: Map canvas, render strategies and the map view
    - selection: Selection sets and bulk zone assignment
    - cutting: Cut editor that splits a street into new segments
    - session: Per-operator map sessions
    - api: API endpoints

Usage:
    from zones.session import session_registry

    session = await session_registry.create()
    session.selection("segments").toggle(segment_id)
    session.selection("segments").choose_target(district_id)
    await session.assign("segments")
"""
