"""
Repository-root conftest.

Its presence makes pytest put the repository root on `sys.path`, so test
modules can import the package as `src.keypool...` exactly as they do under
`python -m unittest discover -s tests -t .`.
"""
