"""Link business logic services."""
