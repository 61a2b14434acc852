"""
Prediction-market snapshot with detected edges, and live reference quotes.
"""

from fastapi import APIRouter

from prediction_markets import detect_edge
from .deps import get_market_feed, get_quote_feed, get_simulator

router = APIRouter(tags=["markets"])


@router.get("/api/markets")
async def get_markets(edges_only: bool = False):
    """Latest market snapshot; each entry carries its edge and whether it was bet recently"""
    feed = get_market_feed()
    if not feed:
        return {"markets": [], "updated_at": None}

    sim = get_simulator()
    markets = []
    for market in feed.get_markets():
        opp = detect_edge(market)
        if edges_only and not opp.has_edge:
            continue
        entry = opp.to_dict()
        entry["recently_bet"] = bool(sim) and sim.edge_scanner.recently_bet(sim.state, market.id)
        markets.append(entry)

    markets.sort(key=lambda m: m["edge"], reverse=True)
    return {"markets": markets, "updated_at": feed.updated_at}


@router.get("/api/quotes")
async def get_quotes():
    """Live reference quotes; `fresh` is False once a quote is too old to steer the price paths"""
    feed = get_quote_feed()
    if not feed:
        return {"quotes": []}

    fresh = feed.get_reference_prices()
    quotes = []
    for quote in feed.get_quotes():
        quote["fresh"] = quote["symbol"] in fresh
        quotes.append(quote)
    return {"quotes": sorted(quotes, key=lambda q: q["symbol"])}
