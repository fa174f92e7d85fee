"""
Console entrypoints, one per decorated function, named `sdlib-<module>-<function>`.
"""
