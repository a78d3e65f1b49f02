"""Cart checkout and payment confirmation service for the storefront."""
