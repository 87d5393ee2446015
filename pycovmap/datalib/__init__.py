"""
Coverage data sources.

- :mod:`pycovmap.datalib.covjson`
"""
