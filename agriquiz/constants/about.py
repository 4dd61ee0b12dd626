"""Static metadata describing Agriquiz."""

APP_NAME = "Agriquiz"
APP_VERSION = "0.1"
APP_ABOUT_TEXT = (
    "Agriquiz is the practice-test portal backend for Agribank staff. "
    "It serves question banks and quiz templates, runs timed practice and exam "
    "sessions, and keeps exam results for the leaderboard."
)
