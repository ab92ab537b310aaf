from .health import health_bp
from .time_slots import time_slots_bp
from .booking import booking_bp
from .payments import payments_bp
