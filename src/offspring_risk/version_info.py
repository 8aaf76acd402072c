# src/offspring_risk/version_info.py
VERSION_INT = 0, 3, 0
VERSION = '.'.join([str(x) for x in VERSION_INT])
