"""HTTP routers for the Mentorline API."""
