from .pricing import extras_count, extras_price, line_total, cart_totals, describe_selections
from .geo import distance_km, delivery_fee, quote_delivery
from .order_status import progress_index, is_terminal, validate_transition
from .order_helpers import generate_order_number
