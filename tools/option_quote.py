from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from optionpool.core.black_scholes import bs_price
from optionpool.core.errors import OptionPoolError
from optionpool.core.fixed_point import ZERO, Fixed64x64
from optionpool.core.quote import quote_price


def _fx(value: str, *, name: str) -> Fixed64x64:
    try:
        return Fixed64x64.from_decimal(value)
    except OptionPoolError as exc:
        raise SystemExit(f"{name}: {exc}")


def main() -> int:
    ap = argparse.ArgumentParser(
        description="Price one option series: Black-Scholes, C-Level and slippage for a liquidity move"
    )
    ap.add_argument("--spot", type=str, required=True)
    ap.add_argument("--strike", type=str, required=True)
    ap.add_argument("--days", type=int, default=28)
    ap.add_argument("--variance", type=str, default="0.16", help="annualised variance")
    ap.add_argument("--c-level", type=str, default="1")
    ap.add_argument("--liquidity", type=str, default="100", help="free liquidity before the trade")
    ap.add_argument("--amount", type=str, default="0", help="liquidity consumed by the trade")
    ap.add_argument("--steepness", type=str, default="1")
    ap.add_argument("--put", action="store_true")
    ap.add_argument("--out", type=str, default="")
    args = ap.parse_args()

    if args.days <= 0:
        raise SystemExit("days must be positive")
    spot = _fx(args.spot, name="spot")
    strike = _fx(args.strike, name="strike")
    liquidity = _fx(args.liquidity, name="liquidity")
    amount = _fx(args.amount, name="amount")
    if liquidity <= ZERO:
        raise SystemExit("liquidity must be positive")
    if amount > liquidity:
        raise SystemExit("amount must be <= liquidity")

    variance = _fx(args.variance, name="variance")
    ttm = Fixed64x64.from_fraction(args.days, 365)
    is_call = not args.put
    try:
        bsch = bs_price(variance, strike, spot, ttm, is_call)
        quote = quote_price(
            variance,
            strike,
            spot,
            ttm,
            _fx(args.c_level, name="c-level"),
            liquidity,
            liquidity - amount,
            _fx(args.steepness, name="steepness"),
            is_call,
        )
    except OptionPoolError as exc:
        raise SystemExit(f"quote failed: {exc}")

    report = {
        "schema": "optionpool/quote/v1",
        "timestamp_unix": int(time.time()),
        "inputs": {
            "spot": args.spot,
            "strike": args.strike,
            "days": args.days,
            "variance": args.variance,
            "c_level": args.c_level,
            "liquidity": args.liquidity,
            "amount": args.amount,
            "steepness": args.steepness,
            "option": "call" if is_call else "put",
        },
        "black_scholes": str(bsch),
        "c_level": str(quote.c_level),
        "slippage_coefficient": str(quote.slippage_coefficient),
        "price": str(quote.price),
    }
    text = json.dumps(report, indent=2, sort_keys=True)
    if args.out:
        Path(args.out).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
