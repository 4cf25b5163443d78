"""Route modules for the HVAC CRM web API."""
