"""Service layer — provisioning logic shared by every CLI command."""
