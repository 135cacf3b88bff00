"""DAO Governance HTTP API."""
