"""Static metadata describing QuizPin."""

APP_NAME = "QuizPin"
APP_VERSION = "0.1"
