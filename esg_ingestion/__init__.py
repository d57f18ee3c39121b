"""
esg_ingestion -- Configuration-driven ESG metric ingestion.

Turns uploaded spreadsheets (CSV, Excel, JSON) into versioned metric
records: adapters read rows, the section parser splits them by the report
type's section table, the normalizer builds typed metrics, and the version
manager commits them as the entity's new active record.

Architecture:
    esg_ingestion/ is a top-level package on top of esg_kernel and
    esg_config. domain/, parsing/ and normalization/ are pure; only
    models/, services/ and selectors/ touch the database.
"""
