"""
Regulatory Risk Scoring
=======================
Per-company / per-mission regulatory risk assessment from a sector plus a
set of activity flags.

Factor weights and licensing timelines follow the public guidance of the
FAA Office of Commercial Space Transportation, the FCC Space Bureau, NOAA
Office of Space Commerce, BIS, DDTC and the ITU.
"""
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from spacenexus.models.schemas import RiskAssessmentRequest


@dataclass(frozen=True)
class RiskFactor:
    id: str
    category: str   # licensing | export_control | spectrum | environmental | liability | international | emerging
    name: str
    description: str
    weight: int     # 1-10
    assessment_question: str


RISK_FACTORS: List[RiskFactor] = [
    # Licensing
    RiskFactor(
        'faa_launch_license', 'licensing', 'FAA Launch/Reentry License',
        'Required for any launch or reentry of a launch vehicle or reentry vehicle in the US. Processing time: 6-18 months.',
        9, 'Does the company launch or operate reentry vehicles from US territory?',
    ),
    RiskFactor(
        'fcc_spectrum_license', 'spectrum', 'FCC Spectrum License',
        'Required for any satellite using radio frequencies. Processing time: 6-24 months. Must also coordinate with ITU.',
        8, 'Does the company operate or plan to operate satellites using radio frequencies?',
    ),
    RiskFactor(
        'noaa_remote_sensing', 'licensing', 'NOAA Remote Sensing License',
        'Required for private remote sensing satellite systems. Recent reforms streamlined process to 3-6 months.',
        7, 'Does the company operate remote sensing (imaging) satellites?',
    ),
    RiskFactor(
        'itar_compliance', 'export_control', 'ITAR Compliance',
        'Defense articles and services on USML require State Department export license. '
        'Violations: criminal penalties up to $1M per violation.',
        10, 'Does the company manufacture or export items on the USML (defense articles)?',
    ),
    RiskFactor(
        'ear_compliance', 'export_control', 'EAR/Commerce Controls',
        'Dual-use items controlled by Commerce Department. Many satellite components are EAR-controlled. '
        'License requirements vary by destination.',
        8, 'Does the company export dual-use space technology or components?',
    ),
    RiskFactor(
        'itu_coordination', 'spectrum', 'ITU Spectrum Coordination',
        'International frequency coordination required for satellite networks. Can take 2-7 years for complex filings.',
        7, 'Does the company plan large constellation deployments requiring international spectrum coordination?',
    ),
    RiskFactor(
        'debris_mitigation', 'environmental', 'Orbital Debris Mitigation Compliance',
        'FCC 5-year deorbit rule (2024). Must demonstrate debris mitigation plan. Non-compliance can block licensing.',
        8, 'Does the company deploy objects to orbit that must be deorbited?',
    ),
    RiskFactor(
        'environmental_review', 'environmental', 'Environmental Impact Review (NEPA)',
        'FAA requires environmental review for launch site operations. Can add 6-18 months to licensing timeline.',
        6, 'Does the company operate or plan to operate launch facilities?',
    ),
    RiskFactor(
        'liability_insurance', 'liability', 'Third-Party Liability Insurance',
        'Required for FAA launch license. Maximum Probable Loss determination can be $500M+. '
        'Commercial insurance market limited.',
        7, 'Does the company conduct launch or reentry operations requiring liability coverage?',
    ),
    RiskFactor(
        'foreign_ownership', 'licensing', 'Foreign Ownership Restrictions (CFIUS)',
        'CFIUS review may be triggered by foreign investment in space companies. Can delay or block investments.',
        6, 'Does the company have or seek foreign investors/partners for defense-adjacent space technology?',
    ),
    RiskFactor(
        'multi_jurisdiction', 'international', 'Multi-Jurisdiction Operations',
        'Operating in multiple countries adds licensing complexity. Each country has different space law frameworks.',
        5, 'Does the company operate in or serve customers in multiple countries?',
    ),
    RiskFactor(
        'space_traffic_mgmt', 'emerging', 'Space Traffic Management (Emerging)',
        'New regulations expected for space traffic management. '
        'Companies should prepare for future compliance requirements.',
        4, 'Does the company operate large constellations or in congested orbital regimes?',
    ),
    RiskFactor(
        'in_space_servicing_rules', 'emerging', 'In-Space Servicing Regulations (Emerging)',
        'No clear regulatory framework yet for RPO, in-space servicing, or active debris removal. '
        'Regulatory uncertainty high.',
        5, 'Does the company plan rendezvous and proximity operations or in-space servicing?',
    ),
    RiskFactor(
        'nuclear_thermal', 'licensing', 'Nuclear Systems Authorization',
        'Nuclear propulsion or power systems require DOE and Presidential approval. Multi-year process.',
        9, 'Does the company develop nuclear propulsion or nuclear power systems for space?',
    ),
]

SECTOR_RISK_PROFILES: Dict[str, List[str]] = {
    'launch': ['faa_launch_license', 'environmental_review', 'liability_insurance', 'itar_compliance', 'debris_mitigation'],
    'satellite': ['fcc_spectrum_license', 'itu_coordination', 'debris_mitigation', 'ear_compliance', 'noaa_remote_sensing'],
    'earth-observation': ['noaa_remote_sensing', 'fcc_spectrum_license', 'ear_compliance', 'debris_mitigation'],
    'defense': ['itar_compliance', 'ear_compliance', 'foreign_ownership', 'fcc_spectrum_license'],
    'communications': ['fcc_spectrum_license', 'itu_coordination', 'debris_mitigation', 'ear_compliance'],
    'in-space': ['debris_mitigation', 'in_space_servicing_rules', 'fcc_spectrum_license', 'liability_insurance'],
    'ground-segment': ['fcc_spectrum_license', 'ear_compliance'],
    'analytics': ['ear_compliance', 'noaa_remote_sensing'],
    'manufacturing': ['itar_compliance', 'ear_compliance', 'environmental_review'],
}

# (min, max) months
LICENSE_TIMELINES: Dict[str, tuple] = {
    'faa_launch_license': (6, 18),
    'fcc_spectrum_license': (6, 24),
    'noaa_remote_sensing': (3, 6),
    'itar_compliance': (3, 12),
    'ear_compliance': (1, 6),
    'itu_coordination': (24, 84),
    'debris_mitigation': (1, 3),
    'environmental_review': (6, 18),
    'liability_insurance': (2, 6),
    'foreign_ownership': (3, 12),
    'nuclear_thermal': (24, 60),
}

ACTIVITY_FLAGS: List[Dict[str, object]] = [
    {'id': 'launches_from_us', 'label': 'Launches from US territory',
     'riskFactors': ['faa_launch_license', 'environmental_review', 'liability_insurance']},
    {'id': 'operates_satellites', 'label': 'Operates satellites',
     'riskFactors': ['fcc_spectrum_license', 'debris_mitigation']},
    {'id': 'exports_technology', 'label': 'Exports space technology',
     'riskFactors': ['ear_compliance', 'itar_compliance']},
    {'id': 'foreign_investors', 'label': 'Has or seeks foreign investors',
     'riskFactors': ['foreign_ownership']},
    {'id': 'large_constellation', 'label': 'Deploys large constellations',
     'riskFactors': ['itu_coordination', 'space_traffic_mgmt', 'debris_mitigation']},
    {'id': 'nuclear_systems', 'label': 'Uses nuclear propulsion/power',
     'riskFactors': ['nuclear_thermal']},
    {'id': 'remote_sensing', 'label': 'Operates remote sensing satellites',
     'riskFactors': ['noaa_remote_sensing']},
    {'id': 'rpo_operations', 'label': 'Performs RPO / in-space servicing',
     'riskFactors': ['in_space_servicing_rules']},
    {'id': 'multi_country', 'label': 'Operates in multiple countries',
     'riskFactors': ['multi_jurisdiction']},
    {'id': 'defense_articles', 'label': 'Manufactures defense articles (USML)',
     'riskFactors': ['itar_compliance', 'foreign_ownership']},
]

SECTORS: List[Dict[str, str]] = [
    {'id': 'launch', 'label': 'Launch Services'},
    {'id': 'satellite', 'label': 'Satellite Operations'},
    {'id': 'earth-observation', 'label': 'Earth Observation'},
    {'id': 'defense', 'label': 'Defense & National Security'},
    {'id': 'communications', 'label': 'Communications'},
    {'id': 'in-space', 'label': 'In-Space Services'},
    {'id': 'ground-segment', 'label': 'Ground Segment'},
    {'id': 'analytics', 'label': 'Space Data & Analytics'},
    {'id': 'manufacturing', 'label': 'Space Manufacturing'},
]

CATEGORY_LABELS: Dict[str, str] = {
    'licensing': 'Licensing',
    'export_control': 'Export Controls',
    'spectrum': 'Spectrum',
    'environmental': 'Environmental',
    'liability': 'Liability',
    'international': 'International',
    'emerging': 'Emerging Regulations',
}

# Emitted in this order when the factor applies
FACTOR_RECOMMENDATIONS: List[tuple] = [
    ('itar_compliance',
     'Engage ITAR compliance counsel early. Establish a Technology Control Plan before any foreign engagement.'),
    ('fcc_spectrum_license',
     'File FCC applications 18-24 months before planned launch. '
     'Consider spectrum lease agreements as a faster alternative.'),
    ('debris_mitigation',
     'Design for the 5-year deorbit rule from day one. Include propulsion or drag devices in satellite design.'),
    ('faa_launch_license',
     'Begin FAA pre-application consultation at least 18 months before planned first launch.'),
    ('foreign_ownership',
     'Consider CFIUS implications before accepting foreign investment. '
     'Structure deals to minimize CFIUS review triggers.'),
    ('noaa_remote_sensing',
     'Take advantage of NOAA streamlined licensing reforms. Engage early for Tier 1 vs Tier 2 classification.'),
    ('itu_coordination',
     'Begin ITU coordination filings 3-5 years before planned constellation deployment. '
     'Coordinate with national administration early.'),
    ('nuclear_thermal',
     'Nuclear space systems require multi-agency coordination (DOE, NRC, NASA). '
     'Plan for a multi-year approval process.'),
    ('in_space_servicing_rules',
     'Monitor emerging RPO/in-space servicing regulatory developments closely. '
     'Engage with CONFERS industry standards body.'),
    ('multi_jurisdiction',
     'Map all jurisdictional requirements early. Consider establishing legal entities in key operating countries.'),
]

COUNSEL_RECOMMENDATION = (
    'Consider hiring a dedicated regulatory affairs team or engaging specialized space law firm '
    '(e.g., Hogan Lovells, DLA Piper, Via Satellite).'
)

_ACTIVITY_INDEX = {flag['id']: flag['riskFactors'] for flag in ACTIVITY_FLAGS}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def risk_level(score: int) -> str:
    if score >= 75:
        return 'critical'
    if score >= 50:
        return 'high'
    if score >= 25:
        return 'medium'
    return 'low'


def applicable_factors(sector: str, activity_flags: Iterable[str]) -> List[str]:
    """Factor ids from the sector profile plus activity flags, de-duplicated in order.

    Flags that are not known activities are taken to be factor ids directly.
    """
    ids: List[str] = list(SECTOR_RISK_PROFILES.get(sector, []))
    for flag in activity_flags:
        ids.extend(_ACTIVITY_INDEX.get(flag, [flag]))
    return list(dict.fromkeys(ids))


def estimate_timeline(factor_ids: Iterable[str]) -> str:
    longest = max((LICENSE_TIMELINES[f][1] for f in factor_ids if f in LICENSE_TIMELINES), default=0)
    if longest <= 0:
        return 'Minimal regulatory timeline'
    return f"{math.ceil(longest * 0.6)}-{longest} months"


def assess_risk(sector: str, activity_flags: Optional[Iterable[str]] = None) -> Dict[str, object]:
    applicable = set(applicable_factors(sector, activity_flags or []))

    by_category: Dict[str, List[RiskFactor]] = {}
    for factor in RISK_FACTORS:
        if factor.id in applicable:
            by_category.setdefault(factor.category, []).append(factor)

    category_scores = []
    required_licenses: List[str] = []
    total_weighted = 0
    total_weight = 0

    for category, factors in by_category.items():
        rows = []
        for f in factors:
            score = f.weight * 10
            total_weighted += score * f.weight
            total_weight += f.weight
            if f.category in ('licensing', 'spectrum'):
                required_licenses.append(f.name)
            rows.append({'factorId': f.id, 'name': f.name, 'score': score, 'notes': f.description})

        category_scores.append({
            'category': category,
            'label': CATEGORY_LABELS.get(category, category),
            'score': _round_half_up(sum(r['score'] for r in rows) / len(rows)),
            'factors': rows,
        })

    overall = _round_half_up(total_weighted / total_weight) if total_weight else 0

    recommendations = [text for factor_id, text in FACTOR_RECOMMENDATIONS if factor_id in applicable]
    if overall >= 50:
        recommendations.append(COUNSEL_RECOMMENDATION)

    category_scores.sort(key=lambda c: c['score'], reverse=True)

    return {
        'overallScore': overall,
        'riskLevel': risk_level(overall),
        'categoryScores': category_scores,
        'estimatedTimeline': estimate_timeline(applicable),
        'recommendations': recommendations,
        'requiredLicenses': required_licenses,
    }


def assess_profile(profile: RiskAssessmentRequest) -> Dict[str, object]:
    return assess_risk(profile.sector, profile.activitiesFlags)
