"""
Tests de los endpoints del módulo de Informes

Usan TestClient con SQLite en memoria para las definiciones y la fuente de
datos en memoria para la ejecución.
"""

from uuid import uuid4

from conftest import listado_facturas, ventas_por_mes
from erp_informes.modules.informes.ai_intake import AICandidate
from erp_informes.modules.informes.router import get_data_source
from erp_informes.modules.informes.templates import PLANTILLAS

BASE = "/api/v1/informes"


class FakeInterpreter:
    def __init__(self, definition):
        self.definition = definition
        self.texts = []

    async def interpret(self, text):
        self.texts.append(text)
        return AICandidate(definition=dict(self.definition), confidence=0.9, explanation="Informe de prueba")


class BrokenSource:
    async def aggregate(self, collection, stages, timeout=None):
        raise RuntimeError("consulta rechazada")

    async def count(self, collection, stages, timeout=None):
        raise RuntimeError("consulta rechazada")


def _create(client, headers, definicion):
    response = client.post(BASE, json=definicion, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestHeaders:

    def test_health_without_company(self, client):
        assert client.get("/health").status_code == 200

    def test_missing_company_header(self, client, user_id):
        response = client.get(BASE, headers={"X-User-ID": str(user_id)})
        assert response.status_code == 400
        assert response.json()["detail"] == "Falta la cabecera X-Company-ID"

    def test_invalid_company_header(self, client, user_id):
        response = client.get(BASE, headers={"X-Company-ID": "acme", "X-User-ID": str(user_id)})
        assert response.status_code == 400

    def test_missing_user_header(self, client, tenant_id):
        response = client.get(BASE, headers={"X-Company-ID": str(tenant_id)})
        assert response.status_code == 401

    def test_tenant_and_security_headers(self, client, headers, tenant_id):
        response = client.get(f"{BASE}/catalogo", headers=headers)
        assert response.headers["X-Tenant-ID"] == str(tenant_id)
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Cache-Control"] == "no-store"


class TestCatalog:

    def test_full_catalog(self, client, headers):
        data = client.get(f"{BASE}/catalogo", headers=headers).json()
        assert {"ventas", "compras", "stock", "tesoreria"} <= set(data)

    def test_module_catalog(self, client, headers):
        data = client.get(f"{BASE}/catalogo/stock", headers=headers).json()
        assert list(data) == ["stock"]

    def test_unknown_module(self, client, headers):
        assert client.get(f"{BASE}/catalogo/contabilidad", headers=headers).status_code == 422


class TestSavedReports:
    """Alta, consulta, modificación y borrado por HTTP"""

    def test_create_and_get(self, client, headers):
        creado = _create(client, headers, ventas_por_mes())
        assert creado["nombre"] == "Ventas 2024 por mes"
        assert creado["es_plantilla"] is False
        assert creado["propietario_id"] == headers["X-User-ID"]

        response = client.get(f"{BASE}/{creado['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["agrupaciones"] == [{"campo": "fecha", "granularidad": "month"}]

    def test_create_invalid_returns_all_errors(self, client, headers):
        definicion = listado_facturas(
            campos=[{"campo": "noExiste"}, {"campo": "total", "agregacion": "mediana"}],
            filtros=[{"campo": "total", "operador": "contains", "valor": "1"}],
        )
        response = client.post(BASE, json=definicion, headers=headers)
        assert response.status_code == 422
        body = response.json()
        assert body["detail"] == "Definición de informe inválida"
        paths = [e["path"] for e in body["errors"]]
        assert {"campos[0].campo", "campos[1].agregacion", "filtros[0].operador"} <= set(paths)

    def test_list_and_search(self, client, headers):
        _create(client, headers, listado_facturas())
        _create(client, headers, ventas_por_mes())

        data = client.get(BASE, params={"busqueda": "mes"}, headers=headers).json()
        assert data["total"] == 1
        assert data["informes"][0]["nombre"] == "Ventas 2024 por mes"

        data = client.get(BASE, params={"limit": 1}, headers=headers).json()
        assert data["total"] == 2
        assert len(data["informes"]) == 1

    def test_list_invalid_type(self, client, headers):
        assert client.get(BASE, params={"tipo": "tarta"}, headers=headers).status_code == 422

    def test_update(self, client, headers):
        creado = _create(client, headers, listado_facturas())
        response = client.put(f"{BASE}/{creado['id']}", json={"nombre": "Facturas"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["nombre"] == "Facturas"
        assert len(response.json()["campos"]) == 5

    def test_other_user_cannot_modify_shared_report(self, client, headers, tenant_id, other_user_id):
        creado = _create(client, headers, listado_facturas(compartido=True))
        other = {"X-Company-ID": str(tenant_id), "X-User-ID": str(other_user_id)}

        assert client.get(f"{BASE}/{creado['id']}", headers=other).status_code == 200
        assert client.put(f"{BASE}/{creado['id']}", json={"nombre": "Mío"}, headers=other).status_code == 403
        assert client.delete(f"{BASE}/{creado['id']}", headers=other).status_code == 403

    def test_private_report_hidden(self, client, headers, tenant_id, other_user_id):
        creado = _create(client, headers, listado_facturas())
        other = {"X-Company-ID": str(tenant_id), "X-User-ID": str(other_user_id)}
        assert client.get(f"{BASE}/{creado['id']}", headers=other).status_code == 404

    def test_other_company_cannot_see(self, client, headers, user_id):
        creado = _create(client, headers, listado_facturas(compartido=True))
        other = {"X-Company-ID": str(uuid4()), "X-User-ID": str(user_id)}
        assert client.get(f"{BASE}/{creado['id']}", headers=other).status_code == 404

    def test_duplicate_and_delete(self, client, headers):
        creado = _create(client, headers, listado_facturas())

        response = client.post(f"{BASE}/{creado['id']}/duplicar", headers=headers)
        assert response.status_code == 201
        copia = response.json()
        assert copia["nombre"] == "Listado de facturas (copia)"
        assert copia["id"] != creado["id"]

        assert client.delete(f"{BASE}/{creado['id']}", headers=headers).status_code == 204
        assert client.get(f"{BASE}/{creado['id']}", headers=headers).status_code == 404
        assert client.get(f"{BASE}/{copia['id']}", headers=headers).status_code == 200

    def test_toggle_favorite(self, client, headers):
        creado = _create(client, headers, listado_facturas())
        response = client.post(f"{BASE}/{creado['id']}/favorito", headers=headers)
        assert response.json()["es_favorito"] is True
        assert client.get(BASE, params={"favoritos": True}, headers=headers).json()["total"] == 1


class TestTemplates:

    def test_seed_and_list(self, client, headers):
        response = client.post(f"{BASE}/plantillas/inicializar", headers=headers)
        assert response.json() == {"creados": len(PLANTILLAS), "mensaje": f"{len(PLANTILLAS)} plantillas creadas"}
        assert client.post(f"{BASE}/plantillas/inicializar", headers=headers).json()["creados"] == 0

        plantillas = client.get(f"{BASE}/plantillas", params={"modulo": "ventas"}, headers=headers).json()
        assert plantillas
        assert all(p["modulo"] == "ventas" and p["es_plantilla"] for p in plantillas)

    def test_templates_are_read_only(self, client, headers):
        client.post(f"{BASE}/plantillas/inicializar", headers=headers)
        plantilla = client.get(f"{BASE}/plantillas", headers=headers).json()[0]
        assert client.delete(f"{BASE}/{plantilla['id']}", headers=headers).status_code == 403


class TestExecution:

    def test_execute_saved_report(self, client, headers):
        creado = _create(client, headers, ventas_por_mes())
        response = client.post(f"{BASE}/{creado['id']}/ejecutar", json={"page": 2, "limit": 2}, headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["rows"] == [
            {"fecha": "2024-03", "totales.totalFactura": 550.0},
            {"fecha": "2024-12", "totales.totalFactura": 600.0},
        ]
        assert data["totals"] == {"totales.totalFactura": 2150.0}
        assert data["pagination"] == {"page": 2, "limit": 2, "total": 4, "total_pages": 2}
        assert [c["label"] for c in data["columns"]] == ["Mes", "Total Factura"]

    def test_execute_without_body(self, client, headers):
        creado = _create(client, headers, ventas_por_mes())
        response = client.post(f"{BASE}/{creado['id']}/ejecutar", headers=headers)
        assert response.json()["pagination"]["total"] == 4

    def test_execute_ad_hoc(self, client, headers):
        definicion = listado_facturas(filtros=[{"campo": "clienteNombre", "operador": "contains", "valor": "ACME"}])
        response = client.post(f"{BASE}/ejecutar", json={"definicion": definicion}, headers=headers)
        assert response.status_code == 200
        assert [r["numero"] for r in response.json()["rows"]] == ["F-001", "F-003", "F-006"]

    def test_execute_with_parameters(self, client, headers):
        definicion = listado_facturas(
            parametros=[{"nombre": "estado", "tipo": "select", "opciones": ["emitida", "cobrada"], "requerido": True}],
            filtros=[{"campo": "estado", "operador": "equals", "parametro": "estado"}],
        )
        missing = client.post(f"{BASE}/ejecutar", json={"definicion": definicion}, headers=headers)
        assert missing.status_code == 422
        assert missing.json()["errors"][0]["path"] == "parametros.estado"

        response = client.post(
            f"{BASE}/ejecutar",
            json={"definicion": definicion, "parametros": {"estado": "cobrada"}},
            headers=headers,
        )
        assert [r["numero"] for r in response.json()["rows"]] == ["F-002", "F-003", "F-007"]

    def test_source_failure(self, client, headers):
        client.app.dependency_overrides[get_data_source] = lambda: BrokenSource()
        response = client.post(f"{BASE}/ejecutar", json={"definicion": listado_facturas()}, headers=headers)
        assert response.status_code == 502
        assert response.json()["attempts"] == 1

    def test_export_csv(self, client, headers):
        creado = _create(client, headers, ventas_por_mes())
        response = client.post(f"{BASE}/{creado['id']}/exportar", json={"formato": "csv"}, headers=headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith("attachment; filename=ventas_2024_por_mes_")
        lines = response.content.decode("utf-8-sig").splitlines()
        assert lines[0] == "Mes;Total Factura"
        assert lines[-1] == "TOTAL;2.150,00 €"

    def test_export_format_not_enabled(self, client, headers):
        creado = _create(client, headers, ventas_por_mes(config={"formatos": ["csv"]}))
        response = client.post(f"{BASE}/{creado['id']}/exportar", json={"formato": "pdf"}, headers=headers)
        assert response.status_code == 422


class TestAI:

    CANDIDATO = {
        "modulo": "ventas",
        "coleccion": "facturas",
        "titulo": "Facturas por estado",
        "campos": [
            {"campo": "estado", "agregacion": "ninguna"},
            {"campo": "total", "agregacion": "conteo", "alias": "facturas"},
        ],
        "agrupaciones": [{"campo": "estado"}],
        "ordenamiento": [{"campo": "estado", "direccion": "asc"}],
        "tipoVisualizacion": "tabla",
        "confianza": "alta",
    }

    def test_suggestions(self, client, headers):
        data = client.get(f"{BASE}/ia/sugerencias", headers=headers).json()
        assert data["modulo"] == "todos"
        assert data["sugerencias"]

    def test_generate_without_interpreter(self, client, headers):
        response = client.post(f"{BASE}/ia/generar", json={"texto": "facturas por estado"}, headers=headers)
        assert response.status_code == 503

    def test_generate_and_execute(self, client, headers):
        interpreter = FakeInterpreter(self.CANDIDATO)
        client.app.state.ai_interpreter = interpreter

        response = client.post(
            f"{BASE}/ia/generar",
            json={"texto": "facturas por estado", "modulo": "ventas"},
            headers=headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert interpreter.texts == ["facturas por estado (módulo ventas)"]
        assert data["definicion"]["nombre"] == "Facturas por estado"
        assert data["confianza"] == 0.9
        assert data["resultado"]["rows"] == [
            {"estado": "borrador", "facturas": 1},
            {"estado": "cobrada", "facturas": 3},
            {"estado": "emitida", "facturas": 3},
            {"estado": "vencida", "facturas": 1},
        ]

    def test_generate_invalid_definition(self, client, headers):
        client.app.state.ai_interpreter = FakeInterpreter({"modulo": "ventas", "coleccion": "facturas", "titulo": "x"})
        response = client.post(f"{BASE}/ia/generar", json={"texto": "algo raro"}, headers=headers)
        assert response.status_code == 422
        assert [e["path"] for e in response.json()["errors"]] == ["campos"]
