import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings, get_settings
from app.core.dependencies import get_db
from app.main import app
from app.models.finance import AuditLog, Base, Receivable
from app.services.ai.common.json_tools import ResponseRecoveryError
from app.services.ai.common.reasoning import ReasoningService
from app.services.ai.sheet_analysis.contracts import SheetAnalysisResult

TEAM_ID = "55555555-5555-5555-5555-555555555555"

RECEIVABLES_CSV = (
    "Cliente,Valor,Vencimento\n"
    'Ana Costa,"1.500,00",10/02/2024\n'
    "Bruno Lima,2300,15/05/2024\n"
).encode()


class FixedReasoning(ReasoningService):
    def __init__(self, fail=False):
        self.fail = fail

    async def classify(self, sample, context):
        if self.fail:
            raise ResponseRecoveryError("No analysis object in response")
        return SheetAnalysisResult.model_validate({
            "entityType": "receivable",
            "columnMapping": {
                "Cliente": "clientName",
                "Valor": {"field": "amount", "transform": "currency"},
                "Vencimento": {"field": "expectedDate", "transform": "date"},
            },
        })

    async def extract_visual(self, document, schema, context):
        raise ResponseRecoveryError("No entities could be recovered from the response")


class SetupAssistantApiTests(unittest.TestCase):
    """Upload endpoints: validation, tenant header and error mapping."""

    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.reasoning = FixedReasoning()
        self.built_for = []

        def build_service(db, team_id):
            from app.services.setup_assistant.service import SetupAssistantService

            self.built_for.append(team_id)
            return SetupAssistantService(
                db,
                team_id,
                reasoning=self.reasoning,
                settings=Settings(setup_assistant_batch_pause_seconds=0, setup_assistant_file_pause_seconds=0),
            )

        self.service_patch = patch("app.api.v1.setup_assistant._build_service", side_effect=build_service)
        self.service_patch.start()
        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        self.service_patch.stop()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _upload(self, filename, content, headers=None):
        return self.client.post(
            "/api/v1/setup-assistant/upload",
            files={"file": (filename, content, "application/octet-stream")},
            headers={"X-Team-Id": TEAM_ID} if headers is None else headers,
        )

    def test_upload_creates_entities(self):
        resp = self._upload("recebiveis.csv", RECEIVABLES_CSV)

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["file_type"], "csv")
        self.assertEqual(data["receivables_created"], 2)
        self.assertEqual(data["sheets"]["analyzed_tables"], 1)
        self.assertEqual(self.built_for, [TEAM_ID])

        db = self.SessionLocal()
        try:
            rows = db.query(Receivable).all()
            self.assertEqual(len(rows), 2)
            self.assertTrue(all(str(row.team_id) == TEAM_ID for row in rows))
            audit = db.query(AuditLog).one()
            self.assertEqual(audit.action, "BULK_CREATE_RECEIVABLES")
        finally:
            db.close()

    def test_team_header_required(self):
        resp = self._upload("recebiveis.csv", RECEIVABLES_CSV, headers={})
        self.assertEqual(resp.status_code, 422)

    def test_team_header_must_be_uuid(self):
        resp = self._upload("recebiveis.csv", RECEIVABLES_CSV, headers={"X-Team-Id": "team-1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Invalid X-Team-Id header")

    def test_empty_file_rejected(self):
        resp = self._upload("vazio.csv", b"")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Empty file: vazio.csv")
        self.assertEqual(self.built_for, [])

    def test_unsupported_file_type(self):
        from app.services.setup_assistant.file_types import UNSUPPORTED_MESSAGE

        resp = self._upload("notas.txt", b"just text")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], UNSUPPORTED_MESSAGE)

    def test_analysis_failure_maps_to_422(self):
        self.reasoning.fail = True

        resp = self._upload("recebiveis.csv", RECEIVABLES_CSV)
        self.assertEqual(resp.status_code, 422)
        self.assertIn("recebiveis.csv", resp.json()["detail"])

    def test_vision_failure_details_hidden(self):
        resp = self._upload("scan.pdf", b"%PDF-1.4 scan")
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["detail"], "Internal error")

    def test_file_size_limit(self):
        with patch.dict(os.environ, {"SETUP_ASSISTANT_MAX_FILE_BYTES": "16"}):
            get_settings.cache_clear()
            resp = self._upload("recebiveis.csv", RECEIVABLES_CSV)

        self.assertEqual(resp.status_code, 413)
        self.assertEqual(resp.json()["detail"], "File too large: recebiveis.csv")

    def test_disabled_feature_is_not_found(self):
        with patch.dict(os.environ, {"ENABLE_SETUP_ASSISTANT": "false"}):
            get_settings.cache_clear()
            resp = self._upload("recebiveis.csv", RECEIVABLES_CSV)

        self.assertEqual(resp.status_code, 404)

    def test_upload_multiple(self):
        resp = self.client.post(
            "/api/v1/setup-assistant/upload-multiple",
            files=[
                ("files", ("recebiveis.csv", RECEIVABLES_CSV, "text/csv")),
                ("files", ("notas.txt", b"just text", "text/plain")),
            ],
            headers={"X-Team-Id": TEAM_ID},
        )

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["total_files"], 2)
        self.assertEqual(data["successful_files"], 1)
        self.assertEqual(data["failed_files"], 1)
        self.assertEqual(data["receivables_created"], 2)
        self.assertEqual([item["status"] for item in data["file_results"]], ["success", "error"])

    def test_upload_multiple_file_limit(self):
        with patch.dict(os.environ, {"SETUP_ASSISTANT_MAX_FILES": "1"}):
            get_settings.cache_clear()
            resp = self.client.post(
                "/api/v1/setup-assistant/upload-multiple",
                files=[
                    ("files", ("a.csv", RECEIVABLES_CSV, "text/csv")),
                    ("files", ("b.csv", RECEIVABLES_CSV, "text/csv")),
                ],
                headers={"X-Team-Id": TEAM_ID},
            )

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Too many files (max 1)")

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
        self.assertIn("mock", resp.json()["providers"])


class SchemaInitTests(unittest.TestCase):
    def test_startup_creates_missing_tables(self):
        from sqlalchemy import inspect

        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.assertEqual(inspect(engine).get_table_names(), [])

        with patch("app.core.dependencies.engine", engine):
            with TestClient(app) as client:
                self.assertEqual(client.get("/health").status_code, 200)

        tables = set(inspect(engine).get_table_names())
        self.assertTrue({"contracts", "receivables", "expenses", "audit_logs"} <= tables)
        engine.dispose()

    def test_no_database_configured(self):
        from app.core.dependencies import init_db

        with patch("app.core.dependencies.engine", None):
            self.assertFalse(init_db())
