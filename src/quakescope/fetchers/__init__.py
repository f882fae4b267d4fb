"""Network collaborators: USGS event feed and IP geolocation."""
