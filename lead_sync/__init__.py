"""Lead sync: merge newly created leads from several source stores into the CRM."""

__version__ = "0.1.0"
