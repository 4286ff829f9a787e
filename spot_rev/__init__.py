"""Mirror a Spotify playlist into another, newest additions first."""

__version__ = "0.1.0"
