# tests/test_extractors.py
import json

import pytest
from bs4 import BeautifulSoup

from modules.rekrute_jobs.lib import extractors as ex


def _soup(html):
    return BeautifulSoup(html, "html.parser")


def _ld(obj):
    return f'<script type="application/ld+json">{json.dumps(obj)}</script>'


# ----------------------------------------------------------------------
# JSON-LD
# ----------------------------------------------------------------------
def test_json_ld_job_posting_is_projected():
    html = _ld({
        "@context": "https://schema.org",
        "@type": "JobPosting",
        "title": "Développeur Java",
        "hiringOrganization": {"@type": "Organization", "name": "Acme Maroc"},
        "jobLocation": {"@type": "Place", "address": {"addressLocality": "Rabat", "addressCountry": "MA"}},
        "datePosted": "2025-03-12",
        "validThrough": "2025-04-30",
        "employmentType": ["FULL_TIME", "PERMANENT"],
        "baseSalary": {"currency": "MAD", "value": {"minValue": 10000, "maxValue": 15000}},
        "description": "<p>Missions</p>",
    })
    got = ex.extract_json_ld(_soup(html))
    assert got.title == "Développeur Java"
    assert got.company == "Acme Maroc"
    assert got.location == "Rabat"
    assert got.date_posted == "2025-03-12"
    assert got.valid_through == "2025-04-30"
    assert got.employment_type == "FULL_TIME, PERMANENT"
    assert got.salary == "10000-15000 MAD"
    assert got.description_html == "<p>Missions</p>"


def test_json_ld_skips_malformed_blocks_and_walks_graph():
    html = (
        '<script type="application/ld+json">{not json</script>'
        + _ld({"@type": "Organization", "name": "ReKrute"})
        + _ld({
            "@graph": [
                {"@type": "WebPage", "name": "page"},
                {"@type": "JobPosting", "title": "Comptable", "hiringOrganization": "Fiduciaire X"},
            ]
        })
    )
    got = ex.extract_json_ld(_soup(html))
    assert got.title == "Comptable"
    assert got.company == "Fiduciaire X"


def test_json_ld_location_falls_back_to_region_then_country():
    html = _ld({
        "@type": "JobPosting",
        "title": "Chef de projet",
        "jobLocation": [{"address": {"addressRegion": "Souss-Massa"}}],
        "baseSalary": {"currency": "MAD", "value": {"value": 9000}},
    })
    got = ex.extract_json_ld(_soup(html))
    assert got.location == "Souss-Massa"
    assert got.salary == "9000 MAD"

    html = _ld({"@type": "JobPosting", "title": "x", "jobLocation": {"address": {"addressCountry": {"name": "Maroc"}}}})
    assert ex.extract_json_ld(_soup(html)).location == "Maroc"


def test_json_ld_absent_or_unrelated_returns_none():
    assert ex.extract_json_ld(_soup("<p>rien</p>")) is None
    assert ex.extract_json_ld(_soup(_ld({"@type": "BreadcrumbList"}))) is None


# ----------------------------------------------------------------------
# Headings / selectors
# ----------------------------------------------------------------------
def test_heading_split_into_title_company_location():
    got = ex.extract_heading_fields(_soup("<h1>Data Analyst - Acme | Casablanca</h1>"))
    assert (got.title, got.company, got.location) == ("Data Analyst", "Acme", "Casablanca")


def test_heading_split_with_multiword_parts():
    got = ex.split_heading("Senior Engineer - Acme Corp - Casablanca")
    assert (got.title, got.company, got.location) == ("Senior Engineer", "Acme Corp", "Casablanca")


def test_heading_with_extra_parts_keeps_third_as_location():
    got = ex.split_heading("Chef de projet - Acme - Rabat - Hybride")
    assert (got.title, got.company, got.location) == ("Chef de projet", "Acme", "Rabat")


def test_heading_without_separators_uses_selectors_and_labels():
    html = """
    <h1>Responsable RH</h1>
    <div class="company">Banque Populaire</div>
    <ul><li>Poste basé à : Agadir</li></ul>
    """
    got = ex.extract_heading_fields(_soup(html))
    assert got.title == "Responsable RH"
    assert got.company == "Banque Populaire"
    assert got.location == "Agadir"


def test_heading_location_from_microdata():
    html = '<h1>Juriste</h1><span itemprop="addressLocality">Tanger</span>'
    assert ex.extract_heading_fields(_soup(html)).location == "Tanger"


def test_labeled_location_in_english():
    assert ex.labeled_location(_soup("<p>Based in: Marrakech</p>")) == "Marrakech"


# ----------------------------------------------------------------------
# Description
# ----------------------------------------------------------------------
def test_description_from_section_headings():
    html = """
    <div>
      <h2>Poste</h2><p>Analyser les données.</p>
      <h3>Détails</h3><p>Sous-section incluse.</p>
      <h2>Profil recherché</h2><ul><li>SQL</li></ul>
      <h2>Autres offres</h2><p>Hors sujet</p>
    </div>
    """
    got = ex.extract_description_html(_soup(html))
    assert "Analyser les données." in got
    assert "Sous-section incluse." in got
    assert "<li>SQL</li>" in got
    assert "Hors sujet" not in got


def test_matching_subheading_inside_a_section_is_taken_once():
    html = """
    <div>
      <h2>Poste :</h2><p>Intro du poste.</p>
      <h3>Missions</h3><ul><li>Coder des APIs</li></ul>
      <h2>Profil recherché :</h2><p>Trois ans d'expérience.</p>
    </div>
    """
    got = ex.extract_description_html(_soup(html))
    assert got.count("Coder des APIs") == 1
    assert got.index("Intro du poste.") < got.index("Coder des APIs") < got.index("Trois ans")


def test_subheading_matching_on_its_own_is_kept_without_parent_section():
    html = "<h2>Autres offres</h2><p>Hors sujet</p><h3>Missions</h3><p>Piloter les audits.</p>"
    got = ex.extract_description_html(_soup(html))
    assert "Piloter les audits." in got
    assert "Hors sujet" not in got


def test_description_from_container_requires_min_length():
    short = '<div id="job_desc">Trop court</div>'
    assert ex.description_from_containers(_soup(short)) is None

    body = "Description détaillée du poste. " * 5
    got = ex.extract_description_html(_soup(f'<div id="job_desc"><p>{body}</p></div>'))
    assert got.startswith("<p>Description détaillée")


def test_description_from_central_column():
    body = "Nous cherchons un profil autonome et rigoureux pour notre agence. " * 3
    html = f"""
    <div class="col-md-9">
      <div class="filters">Filtrer par ville</div>
      <div class="texte"><p>{body}</p></div>
    </div>
    """
    got = ex.extract_description_html(_soup(html))
    assert got is not None
    assert "profil autonome" in got


# ----------------------------------------------------------------------
# Dates
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "html, expected",
    [
        ("<span>Publiée le 12/03/2025</span>", "12/03/2025"),
        ("<span>Published on: 01.02.2025</span>", "01.02.2025"),
        ("<span>Posted on 3 days ago</span>", "3 days ago"),
        ("<p>Mise à jour 05-06-2024</p>", "05-06-2024"),
    ],
)
def test_date_posted(html, expected):
    assert ex.extract_date_posted(_soup(html)) == expected


def test_date_posted_missing():
    assert ex.extract_date_posted(_soup("<p>aucune date</p>")) is None


def test_valid_through_from_deadline_label():
    html = "<p>Publiée le 01/03/2025</p><p>Date limite de candidature : 31/03/2025</p>"
    assert ex.extract_valid_through(_soup(html)) == "31/03/2025"


# ----------------------------------------------------------------------
# Employment type / salary
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "text, expected",
    [
        ("Type de contrat : CDI", "PERMANENT"),
        ("Contrat CDD à temps plein", "FIXED_TERM, FULL_TIME"),
        ("Internship, part-time", "INTERNSHIP, PART_TIME"),
        ("Mission en freelance", "FREELANCE"),
        ("Poste en intérim", "TEMPORARY"),
        ("Aucune information", None),
    ],
)
def test_employment_type(text, expected):
    assert ex.extract_employment_type(text) == expected


def test_employment_type_prefers_labeled_line():
    text = "Nous proposons aussi des stages.\nType de contrat : CDI"
    assert ex.extract_employment_type(text) == "PERMANENT"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Salaire : 8 000 - 10 000 MAD", "8 000 - 10 000 MAD"),
        ("Rémunération proposée : 12000 DH brut", "12000 DH"),
        ("Package attractif de 2500 € par mois", "2500 €"),
        ("Salary: $ 3,000", "$ 3,000"),
        ("Salaire : non spécifié", None),
        ("Bac+5 avec 3 ans d'expérience", None),
    ],
)
def test_salary(text, expected):
    assert ex.extract_salary(text) == expected


# ----------------------------------------------------------------------
# Language
# ----------------------------------------------------------------------
def test_language_from_html_lang():
    assert ex.detect_language(_soup('<html lang="en-US"><body>Poste</body></html>')) == "en"


def test_language_from_url_prefix():
    soup = _soup("<body>x</body>")
    assert ex.detect_language(soup, "https://www.rekrute.com/en/offre-emploi-x-1.html") == "en"
    assert ex.detect_language(soup, "https://www.rekrute.com/fr/offre-emploi-x-1.html") == "fr"
    assert ex.detect_language(soup, "https://www.rekrute.com/offre-emploi-x-1.html") is None


def test_language_from_keywords():
    fr = _soup("<p>Profil recherché : expérience en gestion, compétences en Excel.</p>")
    en = _soup("<p>Job description. Requirements: experience and skills.</p>")
    assert ex.detect_language(fr) == "fr"
    assert ex.detect_language(en) == "en"


# ----------------------------------------------------------------------
# Location fallback / title fallback
# ----------------------------------------------------------------------
def test_location_from_secondary_heading():
    assert ex.extract_location_fallback(_soup("<h2>Acme | Fès (Maroc)</h2>"), None) == "Fès"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.rekrute.com/offre-emploi-comptable-recrutement-acme-casablanca-154321.html", "Casablanca"),
        ("https://www.rekrute.com/offre-emploi-technicien-recrutement-x-el-jadida-1.html", "El Jadida"),
        ("https://www.rekrute.com/offre-emploi-stage-pfe-h-f-12.html", None),
        ("https://www.rekrute.com/offres.html", None),
    ],
)
def test_location_from_url(url, expected):
    assert ex.location_from_url(url) == expected


def test_title_from_meta():
    assert ex.title_from_meta(_soup("<title>Ingénieur Qualité - Acme | ReKrute</title>")) == "Ingénieur Qualité"
    assert ex.title_from_meta(_soup('<meta property="og:title" content="Auditeur">')) == "Auditeur"


# ----------------------------------------------------------------------
# Block detection
# ----------------------------------------------------------------------
def test_looks_blocked():
    assert ex.looks_blocked(_soup("<h1>Access Denied</h1>"))
    assert ex.looks_blocked(_soup("<p>Please solve the CAPTCHA</p>"))
    assert ex.looks_blocked(_soup("<p>Our systems have detected unusual traffic from your network.</p>"))
    assert not ex.looks_blocked(_soup("<h1>Data Analyst</h1><p>CDI à Rabat</p>"))
    # script content is not visible text
    assert not ex.looks_blocked(_soup("<script>var captcha = false;</script><p>ok</p>"))
