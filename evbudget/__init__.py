"""EV charge-budget controller.

Keeps an electric vehicle's charging current low enough that the car plus
the rest of the house stays inside the home's service budget, using
whole-home power telemetry and the vehicle's remote API.
"""
from .const import EVBUDGET_VERSION

__version__ = EVBUDGET_VERSION
