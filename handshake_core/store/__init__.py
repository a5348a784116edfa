"""Single-table DynamoDB store: client, key layout, index derivation, repositories."""
