"""
Reconciler App - Foreign-Key Ordered Writes

Responsibilities:
- Derive the users referenced by a world-record batch
- Ensure every referenced map exists, refreshing the catalog when needed
- Hand records to the saver only after users and maps are in place
"""
