"""ASGI entrypoint for the CalorieWise API."""

from calorie_wise.api.app import create_app
from calorie_wise.containers import build_container

app = create_app(build_container())
