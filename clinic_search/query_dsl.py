"""
Elasticsearch 쿼리 DSL 빌더

bool 쿼리 절, 집계, 하이라이트를 타입이 있는 데이터 클래스로 표현합니다.
잘못된 쿼리는 엔진에 보내기 전에 생성 단계에서 걸러집니다.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

Scalar = Union[str, int, float, bool]


@dataclass(frozen=True)
class MultiMatch:
    """multi_match 절 (점수 계산 대상)"""
    query: str
    fields: Sequence[str]
    type: str = "best_fields"
    fuzziness: Optional[str] = "AUTO"
    operator: Optional[str] = None

    def __post_init__(self):
        if not self.fields:
            raise ValueError("multi_match requires at least one field")

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": self.query,
            "fields": list(self.fields),
            "type": self.type,
        }
        if self.fuzziness:
            body["fuzziness"] = self.fuzziness
        if self.operator:
            body["operator"] = self.operator
        return {"multi_match": body}


@dataclass(frozen=True)
class TermFilter:
    """단일 값 term 필터"""
    field: str
    value: Scalar

    def to_dict(self) -> Dict[str, Any]:
        return {"term": {self.field: self.value}}


@dataclass(frozen=True)
class TermsFilter:
    """다중 값 terms 필터"""
    field: str
    values: Sequence[Scalar]

    def __post_init__(self):
        if not self.values:
            raise ValueError(f"terms filter on {self.field} requires at least one value")

    def to_dict(self) -> Dict[str, Any]:
        return {"terms": {self.field: list(self.values)}}


@dataclass(frozen=True)
class RangeFilter:
    """range 필터 (날짜/숫자)"""
    field: str
    gte: Optional[Scalar] = None
    lte: Optional[Scalar] = None
    gt: Optional[Scalar] = None
    lt: Optional[Scalar] = None

    def __post_init__(self):
        if all(v is None for v in (self.gte, self.lte, self.gt, self.lt)):
            raise ValueError(f"range filter on {self.field} requires a bound")

    def to_dict(self) -> Dict[str, Any]:
        bounds = {
            key: value
            for key, value in (("gte", self.gte), ("lte", self.lte), ("gt", self.gt), ("lt", self.lt))
            if value is not None
        }
        return {"range": {self.field: bounds}}


Clause = Union[MultiMatch, TermFilter, TermsFilter, RangeFilter, "BoolQuery"]


@dataclass
class BoolQuery:
    """
    bool 쿼리

    must 절은 점수에 반영되고, filter 절은 점수 없이 캐시됩니다.
    빈 절 목록은 출력하지 않습니다.
    """
    must: List[Clause] = field(default_factory=list)
    filter: List[Clause] = field(default_factory=list)
    should: List[Clause] = field(default_factory=list)
    must_not: List[Clause] = field(default_factory=list)
    minimum_should_match: Optional[int] = None

    def is_empty(self) -> bool:
        return not (self.must or self.filter or self.should or self.must_not)

    def to_dict(self) -> Dict[str, Any]:
        if self.is_empty():
            return {"match_all": {}}

        body: Dict[str, Any] = {}
        for name in ("must", "filter", "should", "must_not"):
            clauses = getattr(self, name)
            if clauses:
                body[name] = [c.to_dict() for c in clauses]
        if self.minimum_should_match is not None:
            body["minimum_should_match"] = self.minimum_should_match
        return {"bool": body}


@dataclass(frozen=True)
class TermsAgg:
    field: str
    size: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {"terms": {"field": self.field, "size": self.size}}


@dataclass(frozen=True)
class RangeBucket:
    key: str
    from_: Optional[float] = None
    to: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        bucket: Dict[str, Any] = {"key": self.key}
        if self.from_ is not None:
            bucket["from"] = self.from_
        if self.to is not None:
            bucket["to"] = self.to
        return bucket


@dataclass(frozen=True)
class RangeAgg:
    field: str
    ranges: Sequence[RangeBucket]

    def __post_init__(self):
        if not self.ranges:
            raise ValueError(f"range aggregation on {self.field} requires buckets")

    def to_dict(self) -> Dict[str, Any]:
        return {"range": {"field": self.field, "ranges": [r.to_dict() for r in self.ranges]}}


@dataclass(frozen=True)
class DateHistogramAgg:
    field: str
    calendar_interval: str = "month"

    def to_dict(self) -> Dict[str, Any]:
        return {"date_histogram": {"field": self.field, "calendar_interval": self.calendar_interval}}


Aggregation = Union[TermsAgg, RangeAgg, DateHistogramAgg]


@dataclass(frozen=True)
class Highlight:
    """하이라이트 설정 (<mark> 태그)"""
    fields: Sequence[str]
    pre_tag: str = "<mark>"
    post_tag: str = "</mark>"
    fragment_size: int = 150
    number_of_fragments: int = 3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pre_tags": [self.pre_tag],
            "post_tags": [self.post_tag],
            "fields": {
                # ^2 같은 부스트 제거
                f.split("^")[0]: {
                    "fragment_size": self.fragment_size,
                    "number_of_fragments": self.number_of_fragments,
                }
                for f in self.fields
            },
        }


def build_aggregations(aggs: Dict[str, Aggregation]) -> Dict[str, Any]:
    """이름 → 집계 정의 딕셔너리 변환"""
    return {name: agg.to_dict() for name, agg in aggs.items()}
