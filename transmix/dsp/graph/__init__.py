"""Filter-graph model and the mix graph compiler.

``model`` holds the backend-neutral bus/operation types, ``compiler``
turns assembled layers into a validated graph.
"""
