"""HTTP API for the HVAC CRM."""
