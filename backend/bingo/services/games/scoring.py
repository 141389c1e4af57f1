import math

POOL_SHARE = 0.8
DEFAULT_SERVICE_FEE = 0.03


def calculate_prize(stake: int, total_players: int, service_fee: float = DEFAULT_SERVICE_FEE) -> int:
    """Prize paid to a round's winner.

    80% of the winner's stake times the number of registered players goes to
    the pot, the service fee is taken off, and the result is floored to a
    whole amount. E.g. stake 100 with 4 players and a 3% fee pays 310.
    """
    pool = stake * total_players * POOL_SHARE
    return math.floor(pool * (1 - service_fee))
