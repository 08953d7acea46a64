#!/usr/bin/env python3
"""Import a pitch-accent word list from CSV into the database.

Usage: python import_words.py [--csv path]

The CSV needs the columns tango, yomi, pitch, definition, pos, category.
"""
import sys, os, argparse
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from kaki_learn import db

def main() -> None:
    parser = argparse.ArgumentParser(description="Import a word list CSV")
    parser.add_argument("--csv", default="data/words.csv")
    args = parser.parse_args()

    if not os.path.exists(args.csv):
        print(f"❌ CSV not found: {args.csv}"); sys.exit(1)

    db.init_db()
    db.import_words_csv(args.csv)
    print("\n📊 Categories:")
    for row in db.list_categories():
        print(f"   {row['category']}: {row['words']} words")

if __name__ == "__main__":
    main()
