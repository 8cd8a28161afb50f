"""Service desk ticket chat backend."""
