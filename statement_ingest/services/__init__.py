"""Services package: persistence reconciliation, credit gate, auth, file storage and statement queries."""
