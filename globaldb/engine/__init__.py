"""
Store engine: lifecycle, namespaces, cursors and record-log recovery.
"""
