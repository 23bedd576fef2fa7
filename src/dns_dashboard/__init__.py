"""DNS query-log dashboard with cached AI domain classification."""
