"""Static denomination and worship-style vocabularies.

``DENOMINATION_MAP`` maps free-text directory categories (and the values of the
OpenStreetMap ``denomination`` tag) to the canonical denomination names stored
in ``churches.denomination``. A ``None`` value marks a category that is too
generic to say anything about the congregation.
"""

import re
from typing import Dict, FrozenSet, List, Optional, Pattern, Tuple

DENOMINATION_MAP: Dict[str, Optional[str]] = {
    # Baptist
    "Baptist Churches": "Baptist",
    "General Baptist Churches": "Baptist",
    "Baptist Full Gospel Churches": "Baptist",
    "Southern Baptist Churches": "Southern Baptist",
    "Southern Baptist Convention Churches": "Southern Baptist",
    "American Baptist Churches": "American Baptist",
    "American Baptist Association Churches": "American Baptist",
    "Missionary American Baptist Association Churches": "American Baptist",
    "National Baptist Churches": "National Baptist",
    "National Baptist Convention Churches": "National Baptist",
    "Free Will Baptist Churches": "Free Will Baptist",
    "Primitive Baptist Churches": "Primitive Baptist",
    "Missionary Baptist Churches": "Missionary Baptist",
    "Independent Baptist Churches": "Baptist",
    "Fundamental Baptist Churches": "Baptist",
    "Independent Fundamental Baptist Churches": "Baptist",
    "General Association of Regular Baptist Churches": "Baptist",
    "Regular Baptist Churches": "Baptist",
    "Baptist Bible Fellowship Churches": "Baptist",
    "Reformed Baptist Churches": "Reformed Baptist",
    "Sovereign Grace Baptist Churches": "Sovereign Grace Baptist",
    "North American Baptist Churches": "Baptist",
    "Cooperative Baptist Fellowship Churches": "Cooperative Baptist",
    "Conservative Baptist Association Churches": "Baptist",
    # Methodist
    "Methodist Churches": "Methodist",
    "United Methodist Churches": "United Methodist",
    "Free Methodist Churches": "Free Methodist",
    "African Methodist Episcopal Churches": "AME",
    "African Methodist Episcopal Zion Churches": "AME Zion",
    "Christian Methodist Episcopal Churches": "CME",
    "Evangelical Methodist Churches": "Evangelical Methodist",
    "Wesleyan Churches": "Wesleyan",
    # Lutheran
    "Lutheran Churches": "Lutheran",
    "Lutheran Church Missouri Synod": "LCMS",
    "Evangelical Lutheran Church in America": "ELCA",
    "Evangelical Lutheran Church in America (ELCA)": "ELCA",
    "Lutheran Evangelical Synod Churches": "Lutheran",
    "Wisconsin Lutheran Synod Churches": "WELS",
    "Church of the Lutheran Confession": "CLC",
    # Presbyterian
    "Presbyterian Churches": "Presbyterian",
    "Presbyterian Church (USA)": "PCUSA",
    "Presbyterian Church (PCA)": "PCA",
    "Presbyterian Church in America": "PCA",
    "Orthodox Presbyterian Churches": "OPC",
    "Evangelical Presbyterian Churches": "EPC",
    "Associate Reformed Presbyterian Churches": "ARP",
    "Reformed Presbyterian Churches": "Reformed Presbyterian",
    "Bible Presbyterian Churches": "Bible Presbyterian",
    # Catholic
    "Catholic Churches": "Catholic",
    "Roman Catholic Churches": "Catholic",
    "Traditional Catholic Churches": "Catholic",
    "Old Catholic Churches": "Old Catholic",
    "Byzantine Catholic Churches": "Byzantine Catholic",
    "Ukrainian Catholic Churches": "Ukrainian Catholic",
    "Evangelical Catholic Churches": "Evangelical Catholic",
    "Catholic Church of God": "Catholic",
    "Anglican Catholic Churches": "Anglo-Catholic",
    # Orthodox
    "Orthodox Churches": "Orthodox",
    "Eastern Orthodox Churches": "Orthodox",
    "Greek Orthodox Churches": "Greek Orthodox",
    "Christian Orthodox Churches": "Orthodox",
    # Episcopal / Anglican
    "Episcopal Churches": "Episcopal",
    "Anglican Churches": "Anglican",
    "Anglican Episcopal Churches": "Episcopal",
    # Pentecostal
    "Pentecostal Churches": "Pentecostal",
    "Apostolic Pentecostal Churches": "Apostolic Pentecostal",
    "United Pentecostal Churches": "United Pentecostal",
    "Independent Pentecostal Churches": "Pentecostal",
    "Holiness Pentecostal Churches": "Pentecostal Holiness",
    "International Pentecostal Holiness Churches": "Pentecostal Holiness",
    "Pentecostal Church of God": "Pentecostal Church of God",
    # Assemblies of God
    "Assemblies of God Churches": "Assemblies of God",
    "Independent Assemblies of God Churches": "Assemblies of God",
    "Fellowship of Christian Assemblies Churches": "Fellowship of Christian Assemblies",
    # Church of God
    "Church of God": "Church of God",
    "Church of God in Christ": "COGIC",
    "Church of God of Prophecy": "Church of God of Prophecy",
    "Cleveland Church of God": "Church of God (Cleveland)",
    "Anderson Church of God": "Church of God (Anderson)",
    "Seventh Day Church of God": "Seventh Day Church of God",
    # Church of Christ
    "Church of Christ": "Church of Christ",
    "New Testament Church of Christ": "Church of Christ",
    "International Community of Christ Churches": "Community of Christ",
    "Community of Christ Churches": "Community of Christ",
    # Nazarene
    "Church of the Nazarene": "Nazarene",
    "Nazarene Churches": "Nazarene",
    # Adventist
    "Seventh-day Adventist Churches": "Seventh-day Adventist",
    "Advent Christian Churches": "Advent Christian",
    "Seventh Day Churches": "Seventh Day",
    # Other denominations
    "Calvary Chapel Churches": "Calvary Chapel",
    "Vineyard Churches": "Vineyard",
    "Vineyard Christian Fellowship Churches": "Vineyard",
    "Foursquare Gospel Churches": "Foursquare",
    "Congregational Churches": "Congregational",
    "United Church of Christ": "UCC",
    "Disciples of Christ Churches": "Disciples of Christ",
    "Christian Disciples Churches": "Disciples of Christ",
    "Brethren Churches": "Brethren",
    "Mennonite Churches": "Mennonite",
    "Mennonite Brethren Churches": "Mennonite Brethren",
    "Moravian Churches": "Moravian",
    "Friends Churches": "Quaker",
    "Salvation Army Churches": "Salvation Army",
    "Reformed Churches": "Reformed",
    "Reformed Church in America": "RCA",
    "Reformed Christian Churches": "Reformed",
    "Reformed Protestant Churches": "Reformed",
    "Covenant Churches": "Covenant",
    "Evangelical Covenant Churches": "Evangelical Covenant",
    "Alliance Churches": "Christian & Missionary Alliance",
    "Christian & Missionary Alliance Churches": "Christian & Missionary Alliance",
    "Open Bible Churches": "Open Bible",
    "Holiness Churches": "Holiness",
    "Deliverance Churches": "Deliverance",
    "Word Churches": "Word of Faith",
    "Word of Faith Churches": "Word of Faith",
    "Missionary Churches": "Missionary",
    "Bible Way Worldwide Churches": "Bible Way",
    # Non-denominational / interdenominational
    "Non-Denominational Churches": "Non-Denominational",
    "Non-Denominational Full Gospel Churches": "Non-Denominational",
    "Interdenominational Churches": "Interdenominational",
    "Interdenominational Full Gospel Churches": "Interdenominational",
    "Independent Churches": "Independent",
    "Independent Bible Churches": "Bible",
    "Independent Christian Churches": "Christian",
    "Independent Fundamental Churches": "Independent",
    "Community Churches": "Community Church",
    "Bible Churches": "Bible",
    "Christian Churches": "Christian",
    "Evangelical Churches": "Evangelical",
    "Evangelical Christian Churches": "Evangelical",
    "Free Evangelical Churches": "Evangelical Free",
    "Full Gospel Churches": "Full Gospel",
    "Charismatic Churches": "Charismatic",
    "Apostolic Churches": "Apostolic",
    "Campus Ministry Churches": "Campus Ministry",
    "Christian Science Churches": "Christian Science",
    # Generic categories carry no denomination
    "Various Denomination Churches": None,
    "Churches & Places of Worship": None,
    "Churches": None,
    # OpenStreetMap denomination=* tag values
    "baptist": "Baptist",
    "southern_baptist": "Southern Baptist",
    "american_baptist": "American Baptist",
    "methodist": "Methodist",
    "united_methodist": "United Methodist",
    "african_methodist_episcopal": "AME",
    "lutheran": "Lutheran",
    "evangelical_lutheran": "ELCA",
    "presbyterian": "Presbyterian",
    "catholic": "Catholic",
    "roman_catholic": "Catholic",
    "orthodox": "Orthodox",
    "greek_orthodox": "Greek Orthodox",
    "episcopal": "Episcopal",
    "anglican": "Anglican",
    "pentecostal": "Pentecostal",
    "assemblies_of_god": "Assemblies of God",
    "church_of_god": "Church of God",
    "church_of_god_in_christ": "COGIC",
    "church_of_christ": "Church of Christ",
    "nazarene": "Nazarene",
    "seventh_day_adventist": "Seventh-day Adventist",
    "adventist": "Seventh-day Adventist",
    "mennonite": "Mennonite",
    "quaker": "Quaker",
    "salvation_army": "Salvation Army",
    "reformed": "Reformed",
    "congregational": "Congregational",
    "united_church_of_christ": "UCC",
    "disciples_of_christ": "Disciples of Christ",
    "foursquare": "Foursquare",
    "vineyard": "Vineyard",
    "evangelical": "Evangelical",
    "evangelical_free": "Evangelical Free",
    "nondenominational": "Non-Denominational",
    "non-denominational": "Non-Denominational",
    "interdenominational": "Interdenominational",
    "wesleyan": "Wesleyan",
    "moravian": "Moravian",
    "brethren": "Brethren",
    "apostolic": "Apostolic",
    "protestant": None,
    "christian": None,
}

# Ordered inference rules; more specific patterns come first.
NAME_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"\bsouthern baptist\b"), "Southern Baptist"),
    (re.compile(r"\bfree\s*(will)?\s*baptist\b"), "Free Will Baptist"),
    (re.compile(r"\bmissionary baptist\b"), "Missionary Baptist"),
    (re.compile(r"\bprimitive baptist\b"), "Primitive Baptist"),
    (re.compile(r"\bbaptist\b"), "Baptist"),
    (re.compile(r"\bunited methodist\b"), "United Methodist"),
    (re.compile(r"\bame\s+zion\b"), "AME Zion"),
    (re.compile(r"\bame\b"), "AME"),
    (re.compile(r"\bcme\b"), "CME"),
    (re.compile(r"\bmethodist\b"), "Methodist"),
    (re.compile(r"\belca\b"), "ELCA"),
    (re.compile(r"\blcms\b"), "LCMS"),
    (re.compile(r"\blutheran\b"), "Lutheran"),
    (re.compile(r"\bpcusa\b"), "PCUSA"),
    (re.compile(r"\bpca\b"), "PCA"),
    (re.compile(r"\bpresbyterian\b"), "Presbyterian"),
    (re.compile(r"\bcatholic\b"), "Catholic"),
    (re.compile(r"\bepiscopal\b"), "Episcopal"),
    (re.compile(r"\bassembl(y|ies) of god\b"), "Assemblies of God"),
    (re.compile(r"\bpentecostal\b"), "Pentecostal"),
    (re.compile(r"\bcalvary chapel\b"), "Calvary Chapel"),
    (re.compile(r"\bunited church of christ\b|\bucc\b"), "UCC"),
    (re.compile(r"\bchurch of christ\b"), "Church of Christ"),
    (re.compile(r"\bchurch of god in christ\b|\bcogic\b"), "COGIC"),
    (re.compile(r"\bchurch of god\b"), "Church of God"),
    (re.compile(r"\bnazarene\b"), "Nazarene"),
    (re.compile(r"\bfoursquare\b"), "Foursquare"),
    (re.compile(r"\bvineyard\b"), "Vineyard"),
    (re.compile(r"\bmennonite\b"), "Mennonite"),
    (re.compile(r"\bgreek orthodox\b"), "Greek Orthodox"),
    (re.compile(r"\borthodox\b"), "Orthodox"),
    (re.compile(r"\bcongregational\b"), "Congregational"),
    (re.compile(r"\bevangelical free\b"), "Evangelical Free"),
    (re.compile(r"\bseventh.?day adventist\b|\bsda\b"), "Seventh-day Adventist"),
    (re.compile(r"\bapostolic\b"), "Apostolic"),
    (re.compile(r"\bcovenant\b"), "Covenant"),
    (re.compile(r"\breformed\b"), "Reformed"),
]

CANONICAL_DENOMINATIONS: FrozenSet[str] = frozenset(
    [value for value in DENOMINATION_MAP.values() if value]
    + [denomination for _, denomination in NAME_RULES]
)

WORSHIP_STYLES: Tuple[str, ...] = (
    "Contemporary",
    "Traditional",
    "Blended",
    "Liturgical",
    "Gospel",
    "Charismatic",
)

CHURCH_NAME_PATTERN = re.compile(
    r"church|chapel|ministry|ministries|worship|temple|fellowship|congregation|parish|"
    r"cathedral|tabernacle|gospel|sanctuary|christian|baptist|methodist|lutheran|"
    r"presbyterian|catholic|episcopal|pentecostal|nazarene|adventist|apostolic|assembly",
    re.IGNORECASE,
)
