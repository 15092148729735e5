"""DAG navigation core.

This package contains:
- errors: DagError and the error kinds raised while opening, traversing and formatting
- node: the decoded Node
- cursor: DagCursor with path resolution and recursive listing
- formatter: re-encoding decoded nodes under a named codec
"""
