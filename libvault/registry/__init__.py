"""Registry — read-side queries over the libraries installed in a store.

The registry provides:
- Listing: installed libraries grouped by machine name, oldest first
- Patch detection: is a manifest a newer patch of an installed line
- Upgrade detection: is anything at least as new already installed
"""
