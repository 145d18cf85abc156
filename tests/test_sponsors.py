import httpx
import pytest

from conftest import mock_client
from visa_search.config import SupabaseConfig
from visa_search.model import SponsorRecord
from visa_search.scoring import visa_likelihood
from visa_search.sponsors import (
    SponsorRegistry,
    load_registry,
    load_sponsors_from_csv,
    load_sponsors_from_supabase,
    normalize_company_name,
    parse_register_html,
    token_similarity,
)
from visa_search.supabase import SupabaseClient


def _registry(*names: str, threshold: float = 0.80) -> SponsorRegistry:
    return SponsorRegistry([SponsorRecord(name, normalize_company_name(name)) for name in names], threshold)


def test_normalize_strips_legal_suffixes_and_punctuation():
    assert normalize_company_name("Adyen N.V.") == "adyen"
    assert normalize_company_name("Booking.com B.V.") == "bookingcom"
    assert normalize_company_name("  ASML   Netherlands  B.V. ") == "asml"
    assert normalize_company_name("Picnic Technologies BV") == "picnic technologies"


def test_normalize_falls_back_when_everything_is_stripped():
    assert normalize_company_name("Holding B.V.") == "holding b.v."
    assert normalize_company_name("") == ""


def test_exact_match_after_normalization():
    registry = _registry("Adyen")
    match = registry.match("Adyen N.V.")
    assert match.matched
    assert match.method == "exact"
    assert match.matched_name == "Adyen"
    assert visa_likelihood(match.matched, "unclear", []) in ("Medium", "High")


def test_shared_normalization_always_matches_exactly():
    registry = _registry("Mollie B.V.")
    assert registry.match("MOLLIE bv").method == "exact"


def test_prefix_match_either_direction():
    registry = _registry("Booking.com", "Elastic")
    assert registry.match("Bookingcom Travel").method == "prefix"
    match = registry.match("Elas")
    assert match.method == "prefix"
    assert match.matched_name == "Elastic"


def test_fuzzy_match_above_threshold():
    registry = _registry("Coolblue Retail Services")
    match = registry.match("Retail Services Coolblue Online")
    assert match.method == "fuzzy"
    assert match.score == pytest.approx(2 * 3 / 7)
    assert match.matched_name == "Coolblue Retail Services"


def test_fuzzy_match_below_threshold_is_none():
    registry = _registry("Coolblue Retail Services")
    match = registry.match("Acme Retail")
    assert not match.matched
    assert match.method == "none"
    assert match.matched_name is None


def test_empty_registry_never_matches():
    assert not SponsorRegistry([]).match("Adyen").matched


def test_token_similarity_is_commutative():
    pairs = [
        ("adyen payments", "adyen"),
        ("coolblue retail services", "retail coolblue"),
        ("a b c", "b"),
        ("", "adyen"),
    ]
    for a, b in pairs:
        assert token_similarity(a, b) == token_similarity(b, a)
    assert token_similarity("adyen payments", "adyen payments") == 1.0


def test_parse_register_html_reads_first_header_cell():
    html = """
    <table>
      <thead><tr><th>Organisation</th><th>KvK</th></tr></thead>
      <tbody>
        <tr><th scope="row">Adyen N.V.</th><td>34259528</td></tr>
        <tr><th scope="row">  Booking.com
            B.V. </th><td>31047344</td></tr>
        <tr><td>no header</td></tr>
      </tbody>
    </table>
    """
    records = parse_register_html(html)
    assert [r.company_name for r in records] == ["Adyen N.V.", "Booking.com B.V."]
    assert records[0].normalized_name == "adyen"


def test_load_sponsors_from_csv(tmp_path):
    path = tmp_path / "register.csv"
    path.write_text("Organisation Name,KvK\nAdyen N.V.,34259528\nTomTom International B.V.,1\n,2\n")
    records = load_sponsors_from_csv(path)
    assert [r.company_name for r in records] == ["Adyen N.V.", "TomTom International B.V."]
    assert records[1].normalized_name == "tomtom"


def test_load_sponsors_from_csv_without_company_column(tmp_path):
    path = tmp_path / "register.csv"
    path.write_text("foo,bar\n1,2\n")
    with pytest.raises(ValueError):
        load_sponsors_from_csv(path)


@pytest.mark.asyncio
async def test_supabase_load_paginates_and_skips_malformed_rows():
    pages = [
        [{"company_name": "Adyen", "company_name_normalized": "adyen"}, {"company_name": None}],
        [{"company_name": "Mollie B.V.", "company_name_normalized": "mollie"}],
    ]
    seen_offsets = []
    orders = set()

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        seen_offsets.append(offset)
        orders.add(request.url.params["order"])
        return httpx.Response(200, json=pages[offset // 2])

    async with mock_client(handler) as client:
        supabase = SupabaseClient(client, SupabaseConfig("https://db.example.co", "key"))
        records = await load_sponsors_from_supabase(supabase, page_size=2)

    assert seen_offsets == [0, 2]
    assert orders == {"id.asc"}
    assert [r.company_name for r in records] == ["Adyen", "Mollie B.V."]


@pytest.mark.asyncio
async def test_load_registry_failure_yields_empty_registry(config):
    config.ind_register_url = "https://ind.example/register"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async with mock_client(handler) as client:
        registry = await load_registry(config, client, None)
    assert len(registry) == 0
    assert not registry.match("Adyen").matched


@pytest.mark.asyncio
async def test_load_registry_from_register_page(config):
    config.ind_register_url = "https://ind.example/register"
    html = "<table><tbody><tr><th>Adyen N.V.</th></tr></tbody></table>"

    async with mock_client(lambda request: httpx.Response(200, text=html)) as client:
        registry = await load_registry(config, client, None)
    assert registry.match("Adyen").method == "exact"


@pytest.mark.asyncio
async def test_load_registry_from_csv_export(config, tmp_path):
    path = tmp_path / "register.csv"
    path.write_text("Organisation Name\nPicnic Technologies B.V.\n")
    config.sponsor_csv_path = path

    async with mock_client(lambda request: httpx.Response(500)) as client:
        registry = await load_registry(config, client, None)
    assert len(registry) == 1
    assert registry.match("Picnic Technologies").matched
