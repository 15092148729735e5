"""Archive access.

This package contains:
- car: CarBlockSource, the read-only block source over CARv1/CARv2 files
- index_store: BlockIndexStore, a LevelDB cache of archive section offsets
- settings: DagnavSettings loaded from .dagnav/settings.toml
- path: locating settings, the fixtures directory and fixture archives
"""
