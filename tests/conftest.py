"""
pytest 공통 fixture 정의
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

from clinic_search.es_client import DisabledEngineClient
from clinic_search.es_indices import ESIndexManager
from clinic_search.es_search import ESSearchService
from clinic_search.es_sync import ESSyncService
from fakes import FakeRepository, InMemorySearchEngine, pet_row


@pytest.fixture
def engine():
    """인메모리 엔진"""
    return InMemorySearchEngine()


@pytest.fixture
def disabled_engine():
    return DisabledEngineClient()


@pytest.fixture
def index_manager(engine):
    return ESIndexManager(engine)


@pytest.fixture
def sample_pet_rows():
    """pets 테이블 샘플 250건"""
    return [pet_row(i) for i in range(250)]


@pytest.fixture
def repositories(sample_pet_rows):
    """인덱스명 → 인메모리 리포지토리"""
    return {
        "pets": FakeRepository(sample_pet_rows, table="pets"),
        "appointments": FakeRepository([
            {"id": 1, "pet_id": "pet-0001", "owner_id": "user-1", "clinic_id": "clinic-1",
             "reason": "Annual checkup", "status": "scheduled", "priority": "normal"},
            {"id": 2, "pet_id": "pet-0002", "owner_id": "user-2", "clinic_id": "clinic-1",
             "reason": "Vaccination", "status": "completed", "priority": "high"},
        ], table="appointments"),
        "users": FakeRepository([
            {"id": 1, "email": "kim@example.com", "first_name": "Min", "last_name": "Kim",
             "role": "owner", "is_active": True},
        ], table="users"),
        "clinics": FakeRepository([
            {"id": 1, "name": "Happy Paws", "description": "Small animal clinic",
             "city": "Seoul", "rating": 4.5, "is_active": True, "latitude": 37.5, "longitude": 127.0},
        ], table="clinics"),
        "health-records": FakeRepository([
            {"id": 1, "pet_id": "pet-0001", "clinic_id": "clinic-1", "vet_id": "user-9",
             "title": "Skin allergy", "description": "Itching", "current_symptoms": ["itching", "redness"],
             "status": "open"},
        ], table="clinic_pet_cases"),
        "faqs": FakeRepository([
            {"id": 1, "species": "dog", "category": "health", "question": "How often should I vaccinate my dog?",
             "answer": "Puppies need a series of vaccinations.", "order_index": 1, "is_active": True},
            {"id": 2, "species": "cat", "category": "food", "question": "How much should a cat eat?",
             "answer": "Feed adult cats twice a day.", "order_index": 2, "is_active": True},
        ], table="animal_faqs"),
    }


@pytest.fixture
def sync_service(engine, repositories, index_manager):
    return ESSyncService(engine, repositories, index_manager)


@pytest.fixture
def search_service(engine):
    return ESSearchService(engine)
