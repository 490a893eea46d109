"""Services for obsync."""
