import pytest

from funnel_core.data import Snapshot, ingest_leads, ingest_marketing, prepare_context
from funnel_core.filters import normalize_filters


LEADS_CSV = """AGENTE,platform,Provincia Detectada,Tipo de Evento,fecha,VISITAS
PM,wp,Madrid,Venta,05/03/2024,showroom
pm,ig,Madrid,Oferta comercial,06/03/2024,
IC,fb,Toledo,Cotización,07/03/2024,fabrica
IC,WhatsApp,Toledo,Lead,11/03/2024,
juan,IG,Barcelona,Lead,12/04/2024,ambas
,,,Lead,,
"""

PER_DAY_ADS_CSV = """Inicio del informe,Nombre del anuncio,Región,Alcance,Importe gastado (EUR)
2024-03-05,Leads Marzo,Comunidad de Madrid,"1.200","10,50"
2024-03-05,Leads Marzo,Toledo,300,"4,50"
2024-03-06,Leads Marzo,Madrid,500,5
2024-03-05,Marca Primavera,Barcelona,1000,20
2024-03-06,Marca Primavera,Sevilla,"2,000",abc
"""

ACTIVE_CAMPAIGNS_CSV = """Fecha de circulación;Campaña;Tipo;Inversión
05/03/2024;Feria Madrid;Evento;"1.234,56"
06/03;Promo Marzo;;100
;Sin fecha;;50
"""

GENERIC_EVENTS_CSV = """Fecha,Evento,Tipo,Plataforma,Coste
2024-03-10,Newsletter,email,,0
12/03/2024,Google Ads,Publicidad pagada,Google,"1,234.50"
13/03/2024,,organic,Web,5
bad,Stand,event,,9
"""


@pytest.fixture()
def leads_csv():
    return LEADS_CSV


@pytest.fixture()
def snapshot():
    snap = ingest_leads(Snapshot(), LEADS_CSV.encode("utf-8"))
    return ingest_marketing(snap, PER_DAY_ADS_CSV.encode("utf-8"))


@pytest.fixture()
def make_ctx(snapshot):
    def _make(**raw):
        filters = normalize_filters(raw)
        return filters, prepare_context(filters, snapshot)

    return _make
