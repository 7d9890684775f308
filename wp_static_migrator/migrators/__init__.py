"""
Writers of the local content store.

This subpackage downloads remote assets into the public media directory
(following redirects, with retries and a persistent URL mapping) and merges
captured markup into the processed content records.
"""
