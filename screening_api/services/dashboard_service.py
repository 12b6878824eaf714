"""
Dashboard Service
Aggregates submission statistics for the admin overview
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

AGE_BUCKETS = [
    ('18-25', 18, 25),
    ('26-35', 26, 35),
    ('36-45', 36, 45),
    ('46-55', 46, 55),
    ('56-65', 56, 65),
    ('65+', 66, None),
]

RECENT_LIMIT = 20
TOP_LOCATIONS_LIMIT = 5


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _count_since(dates: List[Optional[datetime]], start: datetime, end: datetime) -> int:
    return sum(1 for d in dates if d is not None and start <= d < end)


def _age_distribution(submissions: List[Dict]) -> List[Dict]:
    distribution = []
    for label, low, high in AGE_BUCKETS:
        count = 0
        for s in submissions:
            age = s.get('estimatedAge')
            if not isinstance(age, (int, float)) or isinstance(age, bool):
                continue
            if age >= low and (high is None or age <= high):
                count += 1
        distribution.append({'range': label, 'count': count})
    return distribution


def _gender_distribution(submissions: List[Dict]) -> Dict:
    male = female = unknown = 0
    for s in submissions:
        gender = (s.get('estimatedGender') or '').lower()
        sex = s.get('sex')
        if gender == 'male' or sex == 'male':
            male += 1
        elif gender == 'female' or sex == 'female':
            female += 1
        else:
            unknown += 1
    return {'male': male, 'female': female, 'unknown': unknown}


def _top_locations(submissions: List[Dict], locations: List[Dict]) -> List[Dict]:
    names = {loc.get('id'): loc.get('name') for loc in locations}
    stats: Dict[str, Dict] = OrderedDict()
    for s in submissions:
        church_id = s.get('churchId')
        entry = stats.setdefault(church_id, {'submissions': 0, 'totalRisk': 0})
        entry['submissions'] += 1
        entry['totalRisk'] += s.get('healthRiskScore') or 0

    ranked = [
        {
            'id': church_id,
            'name': names.get(church_id) or church_id,
            'submissions': entry['submissions'],
            'riskScore': round(entry['totalRisk'] / entry['submissions'], 2),
        }
        for church_id, entry in stats.items()
    ]
    ranked.sort(key=lambda item: item['submissions'], reverse=True)
    return ranked[:TOP_LOCATIONS_LIMIT]


def compute_dashboard_stats(
    submissions: List[Dict],
    locations: List[Dict],
    now: Optional[datetime] = None
) -> Dict:
    """
    Build the dashboard payload

    Args:
        submissions: Every submission record
        locations: Every outreach location record
        now: Reference time (UTC); defaults to the current time

    Returns:
        Dict of totals, distributions, top locations and recent submissions
    """
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # Weeks start on Sunday
    start_of_week = start_of_day - timedelta(days=(start_of_day.weekday() + 1) % 7)
    start_of_month = start_of_day.replace(day=1)
    end_of_day = start_of_day + timedelta(days=1)

    dates = [_parse_date(s.get('submissionDate')) for s in submissions]
    total = len(submissions)

    scored = [s.get('healthRiskScore') or 0 for s in submissions]
    with_contact = sum(1 for s in submissions if s.get('phone') or s.get('email'))

    recent = sorted(submissions, key=lambda s: s.get('submissionDate') or '', reverse=True)

    return {
        'totalSubmissions': total,
        'todaySubmissions': _count_since(dates, start_of_day, end_of_day),
        'weekSubmissions': _count_since(dates, start_of_week, end_of_day),
        'monthSubmissions': _count_since(dates, start_of_month, end_of_day),
        'totalOutreachLocations': len(locations),
        'averageRiskScore': round(sum(scored) / total, 2) if total else 0,
        'conversionRate': round(with_contact / total, 4) if total else 0,
        'riskDistribution': {
            'low': sum(1 for s in submissions if s.get('healthRiskLevel') == 'Low'),
            'moderate': sum(1 for s in submissions if s.get('healthRiskLevel') == 'Moderate'),
            'high': sum(1 for s in submissions if s.get('healthRiskLevel') == 'High'),
            'veryHigh': sum(1 for s in submissions if s.get('healthRiskLevel') == 'Very High'),
        },
        'bmiDistribution': {
            'underweight': sum(1 for s in submissions if s.get('bmiCategory') == 'Underweight'),
            'normal': sum(1 for s in submissions if s.get('bmiCategory') in ('Normal weight', 'Normal')),
            'overweight': sum(1 for s in submissions if s.get('bmiCategory') == 'Overweight'),
            'obese': sum(1 for s in submissions if s.get('bmiCategory') == 'Obese'),
        },
        'genderDistribution': _gender_distribution(submissions),
        'ageDistribution': _age_distribution(submissions),
        'topLocations': _top_locations(submissions, locations),
        'recentSubmissions': recent[:RECENT_LIMIT],
    }
