"""TripCircle social backend."""
