"""Build Cypher statements for Apache AGE.

Notes:
    Security:
        AGE accepts no bind parameters inside Cypher text, and identifiers (labels,
        property names, aliases) are never parameterizable anyway. Builders check
        every identifier-like input against a strict pattern before inserting it
        into query text, and values reach the query only through the staging store
        retrieval functions, never as literals.
"""
