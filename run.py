#!/usr/bin/env python3
"""
Simple launcher script for the arbitrage bot.
"""
import argparse
import sys
from dexarb.main import main
import asyncio

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='DEX Flash-Swap Arbitrage Bot')
    parser.add_argument(
        'mode',
        nargs='?',
        default=None,
        choices=['scan', 'simulate', 'live'],
        help='Operation mode: scan (default), simulate, or live'
    )
    parser.add_argument(
        '--path',
        nargs='+',
        metavar='SYMBOL',
        help='Token cycle to evaluate, e.g. --path WETH DAI (base token with --pairs)'
    )
    parser.add_argument(
        '--amount',
        help='Flash loan amount in whole start tokens, e.g. 10'
    )
    parser.add_argument(
        '--pairs',
        action='store_true',
        help='Evaluate every [base, token] pair and write the ranked list to --output'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single round instead of looping'
    )
    parser.add_argument(
        '--output',
        default='output.json',
        help='Where --pairs writes its results (default: output.json)'
    )

    args = parser.parse_args()

    try:
        asyncio.run(main(
            mode=args.mode,
            path=args.path,
            amount=args.amount,
            pairs=args.pairs,
            once=args.once,
            output=args.output
        ))
    except KeyboardInterrupt:
        print("\nBot stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
