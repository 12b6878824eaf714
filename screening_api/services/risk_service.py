"""
Risk Assessment Service
Rule-based health risk score from estimated BMI and self-reported history
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class HealthRiskAssessment:
    risk_level: str
    risk_score: int
    recommendations: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'risk_level': self.risk_level,
            'risk_score': self.risk_score,
            'recommendations': list(self.recommendations),
        }


GENERAL_RECOMMENDATIONS = [
    'Maintain regular physical activity',
    'Follow a balanced, nutritious diet',
    'Schedule regular healthcare checkups',
]


def get_bmi_category(bmi: float) -> str:
    """Categorize BMI into the standard adult buckets"""
    if bmi < 18.5:
        return 'Underweight'
    elif bmi < 25:
        return 'Normal weight'
    elif bmi < 30:
        return 'Overweight'
    return 'Obese'


def get_risk_level(risk_score: int) -> str:
    if risk_score <= 2:
        return 'Low'
    elif risk_score <= 4:
        return 'Moderate'
    elif risk_score <= 6:
        return 'High'
    return 'Very High'


def assess_health_risk(
    bmi: Optional[float],
    family_history_diabetes: bool,
    family_history_high_bp: bool,
    family_history_dementia: bool,
    nerve_symptoms: bool
) -> HealthRiskAssessment:
    """
    Additive risk score

    Args:
        bmi: Estimated BMI (None skips the BMI factor)
        family_history_diabetes: Family history of diabetes
        family_history_high_bp: Family history of hypertension
        family_history_dementia: Family history of dementia
        nerve_symptoms: Reported neuropathy symptoms

    Returns:
        HealthRiskAssessment with one recommendation per triggered factor
        followed by the general recommendations
    """
    risk_score = 0
    recommendations = []

    # BMI
    if bmi is not None and bmi >= 30:
        risk_score += 3
        recommendations.append('Consider weight management programs')
    elif bmi is not None and bmi >= 25:
        risk_score += 2
        recommendations.append('Maintain healthy weight through diet and exercise')

    # Family history
    if family_history_diabetes:
        risk_score += 2
        recommendations.append('Regular blood glucose monitoring recommended')

    if family_history_high_bp:
        risk_score += 2
        recommendations.append('Regular blood pressure monitoring recommended')

    if family_history_dementia:
        risk_score += 1
        recommendations.append('Consider cognitive health maintenance activities')

    # Symptoms
    if nerve_symptoms:
        risk_score += 2
        recommendations.append('Consult healthcare provider about neuropathy symptoms')

    recommendations.extend(GENERAL_RECOMMENDATIONS)

    return HealthRiskAssessment(
        risk_level=get_risk_level(risk_score),
        risk_score=risk_score,
        recommendations=recommendations
    )
