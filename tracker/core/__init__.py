"""Delivery rules shared by every dashboard.

Modules in this package are framework-agnostic where possible: validation,
references, timestamps, lifecycle, filtering and statistics are plain
functions over delivery mappings. Configuration and middleware live here too.
"""
