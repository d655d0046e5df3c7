"""Phabricator Differential as the remote side of the mirror.

- ``transactions`` -- rebuild comments from the transaction log.
- ``users``        -- user lookups with expiring caches.
- ``diffs``        -- Differential diffs and their commit properties.
- ``differential`` -- ``PhabricatorTool``, the ``ReviewTool`` in use.
"""
