#!/usr/bin/env python3
"""
MA Leaderboard - Landscape Snapshot Export

Builds the contract landscape for the latest enrollment period (or the
latest period in a given year) and writes it as one Parquet file, either
locally or to S3.

Usage:
    python scripts/export_landscape_snapshot.py --output landscape.parquet
    python scripts/export_landscape_snapshot.py --year 2024 --output s3://ma-data123/exports/landscape.parquet
"""

import argparse
import os
import sys
from io import BytesIO
from typing import List, Optional, Tuple

import boto3
import pandas as pd

from db import MARepository, get_engine
from api.services.landscape_service import EnrollmentLandscapeBuilder, landscape_frame


def split_s3_uri(uri: str) -> Tuple[str, str]:
    """s3://bucket/key -> (bucket, key)."""
    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise ValueError(f"Expected s3://bucket/key, got '{uri}'")
    return bucket, key


def write_parquet(df: pd.DataFrame, output: str, s3_client=None) -> None:
    """Write a DataFrame as Parquet to a local path or an s3:// URI."""
    if output.startswith("s3://"):
        bucket, key = split_s3_uri(output)
        buffer = BytesIO()
        df.to_parquet(buffer, index=False)
        buffer.seek(0)
        client = s3_client or boto3.client('s3')
        client.put_object(Bucket=bucket, Key=key, Body=buffer.getvalue())
        return

    directory = os.path.dirname(os.path.abspath(output))
    os.makedirs(directory, exist_ok=True)
    df.to_parquet(output, index=False)


def export_snapshot(builder: EnrollmentLandscapeBuilder, output: str, year: Optional[int] = None, s3_client=None) -> dict:
    snapshot = builder.build(year)
    if snapshot.period is None:
        return {'status': 'empty', 'contracts': 0}

    df = landscape_frame(snapshot.contracts)
    df.insert(0, 'report_month', snapshot.period.month)
    df.insert(0, 'report_year', snapshot.period.year)
    write_parquet(df, output, s3_client=s3_client)

    return {
        'status': 'success',
        'period': f"{snapshot.period.year}-{snapshot.period.month:02d}",
        'contracts': len(df),
        'state_eligible': int(df['state_eligible'].sum()),
        'output': output,
    }


def main(argv: Optional[List[str]] = None, builder: Optional[EnrollmentLandscapeBuilder] = None) -> int:
    parser = argparse.ArgumentParser(description="Export the MA contract landscape to Parquet")
    parser.add_argument('--output', required=True, help="Local path or s3://bucket/key")
    parser.add_argument('--year', type=int, help="Latest period in or before this year")
    args = parser.parse_args(argv)

    builder = builder or EnrollmentLandscapeBuilder(MARepository(get_engine(), user_id="export"))
    result = export_snapshot(builder, args.output, year=args.year)

    if result['status'] == 'empty':
        print("No enrollment period available; nothing written")
        return 1

    print(f"Exported {result['contracts']} contracts for {result['period']} "
          f"({result['state_eligible']} state-eligible) to {result['output']}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
