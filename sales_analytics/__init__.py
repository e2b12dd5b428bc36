"""
sales-performance-reports — Source package.

Modules:
    models          — CRM records, roles, lead statuses, date parsing, NotTracked
    config          — config.yaml loading over built-in defaults
    data_loader     — JSON record dump -> Dataset
    date_ranges     — Named timeframes -> inclusive DateRange
    access          — Who may see whose numbers
    metrics         — Per-user activity selection and performance snapshot
    rollup          — Team / organisation aggregation with explicit rate strategies
    reports         — Report assembly for the five report types
    excel_pack      — Multi-sheet openpyxl workbook export
    data_simulator  — Seeded synthetic CRM dataset
"""
