"""
Consultas al RNDC, cumplidos de remesa y monitoreo GPS.
"""
import httpx
import pytest

from conftest import documentos_response, soap_envelope

CREDENCIALES = {"usuario": "EMPRESA@1", "clave": "secreta"}


def _manifiesto_doc(ingreso_id, placa, puntos):
    return {
        "ingresoidmanifiesto": ingreso_id,
        "numnitempresatransporte": "900123456",
        "nummanifiestocarga": f"M-{ingreso_id}",
        "fechaexpedicionmanifiesto": "2025/01/15",
        "codigoempresa": "1234",
        "numplaca": placa,
        "puntoscontrol": {
            "puntocontrol": [
                {
                    "codpuntocontrol": str(n),
                    "codmunicipio": "11001000",
                    "direccion": f"Calle {n}",
                    "fechacita": "2025/01/16",
                    "horacita": "08:00",
                    "latitud": "4.6",
                    "longitud": "-74.0",
                    "tiempopactado": "60",
                }
                for n in puntos
            ]
        },
    }


@pytest.mark.asyncio
async def test_consulta_terceros(api_client, guion):
    guion.respuestas = [
        documentos_response({"ingresoid": "555", "nomidtercero": "JUAN", "codsedetercero": "1"})
    ]

    resp = await api_client.post(
        "/rndc/consultas/terceros",
        json={"credenciales": CREDENCIALES, "nit_empresa": "900123456", "num_id_tercero": "1020"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["datos"] == [{"INGRESOID": "555", "NOMIDTERCERO": "JUAN", "CODSEDETERCERO": "1"}]

    enviado = guion.requests[0].content.decode("utf-8")
    assert "<procesoid>11</procesoid>" in enviado
    assert "<NUMIDTERCERO>'1020'</NUMIDTERCERO>" in enviado

    historial = (await api_client.get("/rndc/consultas", params={"tipo_consulta": "terceros"})).json()
    assert [c["id"] for c in historial] == [body["consulta_id"]]
    assert historial[0]["estado"] == "success"

    detalle = (await api_client.get(f"/rndc/consultas/{body['consulta_id']}")).json()
    assert detalle["datos_respuesta"] == body["datos"]
    assert "<procesoid>11</procesoid>" in detalle["xml_request"]


@pytest.mark.asyncio
async def test_consulta_vehiculos_normalizes_placa(api_client, guion):
    guion.respuestas = [documentos_response({"numplaca": "ABC123", "fechavencimientosoat": "2026/03/01"})]

    resp = await api_client.post(
        "/rndc/consultas/vehiculos",
        json={"credenciales": CREDENCIALES, "nit_empresa": "900123456", "num_placa": " abc 123 "},
    )

    assert resp.json()["datos"][0]["FECHAVENCIMIENTOSOAT"] == "2026/03/01"
    enviado = guion.requests[0].content.decode("utf-8")
    assert "<procesoid>12</procesoid>" in enviado
    assert "<NUMPLACA>'ABC123'</NUMPLACA>" in enviado


@pytest.mark.asyncio
async def test_consulta_rejected(api_client, guion):
    guion.respuestas = [
        httpx.Response(200, text=soap_envelope("<root><ErrorMSG>error CON001: Usuario sin permisos</ErrorMSG></root>"))
    ]

    resp = await api_client.post(
        "/rndc/consultas/terceros",
        json={"credenciales": CREDENCIALES, "nit_empresa": "900123456", "num_id_tercero": "1020"},
    )

    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "CON001"
    assert body["datos"] == []
    detalle = (await api_client.get(f"/rndc/consultas/{body['consulta_id']}")).json()
    assert detalle["estado"] == "error"


@pytest.mark.asyncio
async def test_consulta_ejecutar_raw_xml(api_client, guion):
    guion.respuestas = [documentos_response({"ingresoid": "1"}, {"ingresoid": "2"})]

    resp = await api_client.post(
        "/rndc/consultas/ejecutar",
        json={"xml_request": "<root><solicitud><tipo>3</tipo></solicitud></root>"},
    )

    body = resp.json()
    assert [d["INGRESOID"] for d in body["datos"]] == ["1", "2"]
    assert "<![CDATA[<root><solicitud><tipo>3</tipo></solicitud></root>]]>" in guion.requests[0].content.decode()


@pytest.mark.asyncio
async def test_consulta_not_found(api_client):
    resp = await api_client.get("/rndc/consultas/no-existe")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_preparar_cumplidos_remesa(api_client, guion):
    guion.respuestas = [
        documentos_response({"ingresoid": "9", "fechaing": "2025/01/15", "cantidadcargada": "32000"}),
        documentos_response(),
    ]
    fila = {
        "fecha_entrada_cargue": "15/01/2025",
        "hora_entrada_cargue": "06:00",
        "fecha_entrada_descargue": "15/01/2025",
        "hora_entrada_descargue": "14:00",
    }

    resp = await api_client.post(
        "/rndc/cumplidos/remesas/preparar",
        json={
            "credenciales": CREDENCIALES,
            "nit_empresa": "900123456",
            "filas": [
                {**fila, "consecutivo_remesa": "R-1"},
                {**fila, "consecutivo_remesa": "R-2"},
            ],
        },
    )

    assert resp.status_code == 200
    primero, segundo = resp.json()
    assert primero["error"] is None
    assert primero["item"]["tipo"] == "cumplido_remesa"
    assert primero["item"]["nit_empresa"] == "900123456"
    assert primero["item"]["cantidad_cargada"] == "32000"
    assert primero["item"]["cantidad_entregada"] == "32000"
    assert segundo["item"] is None
    assert "CANTIDADCARGADA" in segundo["error"]

    enviado = guion.requests[0].content.decode("utf-8")
    assert "<CONSECUTIVOREMESA>'R-1'</CONSECUTIVOREMESA>" in enviado
    assert "<variables>INGRESOID,FECHAING,CANTIDADCARGADA</variables>" in enviado

    # El item preparado se acepta tal cual en un lote de cumplidos
    resp = await api_client.post(
        "/rndc/lotes",
        json={"tipo": "cumplido_remesa", "credenciales": CREDENCIALES, "items": [primero["item"]]},
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_monitoreo_saves_new_manifiestos(api_client, guion):
    docs = [_manifiesto_doc("111", "abc123", [1, 2]), _manifiesto_doc("222", "XYZ987", [1])]
    guion.respuestas = [documentos_response(*docs), documentos_response(*docs)]
    payload = {"credenciales": CREDENCIALES, "num_id_gps": "900555444", "tipo_consulta": "NUEVOS"}

    resp = await api_client.post("/rndc/monitoreo", json=payload)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["total_manifiestos"] == 2
    assert body["guardados"] == 2
    assert body["manifiestos"][0]["num_placa"] == "ABC123"
    assert len(body["manifiestos"][0]["puntos_control"]) == 2

    enviado = guion.requests[0].content.decode("utf-8")
    assert "<tipo>9</tipo>" in enviado
    assert "<manifiestos>NUEVOS</manifiestos>" in enviado

    # Segunda consulta con los mismos manifiestos: no se duplican
    body = (await api_client.post("/rndc/monitoreo", json=payload)).json()
    assert body["total_manifiestos"] == 2
    assert body["guardados"] == 0

    page = (await api_client.get("/rndc/manifiestos", params={"num_placa": "abc 123"})).json()
    assert page["total"] == 1
    manifiesto = page["data"][0]
    assert manifiesto["ingreso_id_manifiesto"] == "111"
    assert manifiesto["num_manifiesto_carga"] == "M-111"

    puntos = (await api_client.get(f"/rndc/manifiestos/{manifiesto['id']}/puntos-control")).json()
    assert [p["cod_punto_control"] for p in puntos] == ["1", "2"]
    assert puntos[0]["direccion"] == "Calle 1"

    todos = (await api_client.get("/rndc/manifiestos", params={"limit": 1, "page": 2})).json()
    assert (todos["total"], todos["page"], len(todos["data"])) == (2, 2, 1)


@pytest.mark.asyncio
async def test_monitoreo_especifico_requires_ingreso_id(api_client, guion):
    resp = await api_client.post(
        "/rndc/monitoreo",
        json={"credenciales": CREDENCIALES, "num_id_gps": "900555444", "tipo_consulta": "ESPECIFICO"},
    )

    assert resp.status_code == 422
    assert guion.requests == []


@pytest.mark.asyncio
async def test_monitoreo_rndc_error(api_client, guion):
    guion.respuestas = [httpx.Response(503, text="Service Unavailable")]

    resp = await api_client.post(
        "/rndc/monitoreo",
        json={"credenciales": CREDENCIALES, "num_id_gps": "900555444"},
    )

    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "HTTP_503"
    assert body["guardados"] == 0


@pytest.mark.asyncio
async def test_puntos_control_unknown_manifiesto(api_client):
    resp = await api_client.get("/rndc/manifiestos/no-existe/puntos-control")
    assert resp.status_code == 404
