"""Adaptive decision logic: background EQ planning, layer assembly and
the per-episode pipeline that ties analysis to graph compilation.
"""
