from pydantic import BaseModel
from typing import List


class SourceSummaryResponse(BaseModel):
    source: str
    source_type: str
    total_count: int
    pass_count: int
    dkim_aligned_count: int
    spf_aligned_count: int
    fully_aligned_count: int

    class Config:
        from_attributes = True


class DomainSummaryCountsResponse(BaseModel):
    report_count: int = 0
    message_count: int = 0
    dkim_aligned_count: int = 0
    spf_aligned_count: int = 0
    fully_aligned_count: int = 0

    class Config:
        from_attributes = True


class DomainSummaryResponse(BaseModel):
    domain: str
    summary: List[SourceSummaryResponse]
    domain_summary_counts: DomainSummaryCountsResponse
    start_date: str  # RFC 3339
    end_date: str  # RFC 3339


class DetailRow(BaseModel):
    count: int
    source_ip: str
    esp: str
    domain_name: str
    host_name: str
    reverse_lookup: List[str] = []
    country: str
    disposition: str
    eval_dkim: str
    eval_spf: str
    header_from: str
    envelope_from: str
    envelope_to: str
    auth_dkim_domain: List[str] = []
    auth_dkim_selector: List[str] = []
    auth_dkim_result: List[str] = []
    auth_spf_domain: List[str] = []
    auth_spf_scope: List[str] = []
    auth_spf_result: List[str] = []
    po_reason: List[str] = []
    po_comment: List[str] = []


class DetailResponse(BaseModel):
    detail_rows: List[DetailRow]


class ChartVolume(BaseModel):
    name: int  # Epoch milliseconds
    value: int


class ChartSeries(BaseModel):
    name: str
    series: List[ChartVolume]


class ChartResponse(BaseModel):
    chartdata: List[ChartSeries]
    domain: str


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    database: str
