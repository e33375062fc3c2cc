"""Framework catalog and gap analysis."""
