"""Entity store -- persistent record sets for users, listings, and interests."""
