"""Storage backends for installed libraries.

- port: the interface the library manager consumes
- file_store: a filesystem implementation of that interface
"""
