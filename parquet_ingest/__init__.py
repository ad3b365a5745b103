"""
Parquet Ingestion Pipeline

A one-shot ETL step for object-creation notifications: downloads a Parquet
order file from S3, rebuilds its rows from the stored columns and bulk-loads
them into Postgres inside a single transaction.
"""

__version__ = "0.1.0"
