"""
Calculadora de dosagem proporcional de EC.

    u(t) = (volume / (k * vazao)) * e,   k = base_dose / soma(ml_por_litro)

O volume total é repartido entre os nutrientes na proporção do ml/L de
cada um. Funções puras: nada aqui toca banco, rede ou relógio.
"""
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from hidrocontrole.schemas.config_ec import ConfigECIn, NutrienteConfig

# Volume abaixo disso não justifica acionar bomba
VOLUME_MINIMO_ML = 0.001

# Acionamento manual de nutriente sem concentração definida
DURACAO_ACIONAMENTO_PADRAO_S = 10


@dataclass(frozen=True)
class DoseNutriente:
    name: str
    relay_number: int
    dose_ml: float
    duration_seconds: float


@dataclass(frozen=True)
class PlanoDosagem:
    total_ml_per_liter: float
    k: float
    erro: float
    volume_total_ml: float
    doses: Tuple[DoseNutriente, ...]

    def como_dict(self) -> dict:
        return {
            "total_ml_per_liter": self.total_ml_per_liter,
            "k": self.k,
            "erro": self.erro,
            "volume_total_ml": self.volume_total_ml,
            "doses": [
                {
                    "name": d.name,
                    "relay_number": d.relay_number,
                    "dose_ml": d.dose_ml,
                    "duration_seconds": d.duration_seconds,
                }
                for d in self.doses
            ],
        }


def total_ml_por_litro(nutrientes: Sequence[NutrienteConfig]) -> float:
    return sum(n.ml_per_liter for n in nutrientes)


def calcular_dosagem(config: ConfigECIn, ec_medido: float) -> Optional[PlanoDosagem]:
    """
    Plano de dosagem para levar `ec_medido` ao setpoint.

    Retorna None quando a configuração é insuficiente (soma de ml/L,
    base_dose, vazão ou volume <= 0) ou quando a correção é desprezível,
    inclusive quando nenhuma dose chega a 0.01 s de bomba.
    Só os valores emitidos por nutriente são arredondados (2 casas).
    """
    total = total_ml_por_litro(config.nutrients)
    if total <= 0 or config.base_dose <= 0 or config.flow_rate <= 0 or config.volume <= 0:
        return None

    k = config.base_dose / total
    erro = abs(ec_medido - config.ec_setpoint)
    volume_total = (config.volume / (k * config.flow_rate)) * erro
    if volume_total <= VOLUME_MINIMO_ML:
        return None

    doses = []
    for nutriente in config.nutrients:
        if nutriente.ml_per_liter <= 0:
            continue
        proporcao = nutriente.ml_per_liter / total
        dose_ml = volume_total * proporcao
        duracao = round(dose_ml / config.flow_rate, 2)
        # duração 0 no comando significa "manter ligado"; dose assim fica fora
        if duracao <= 0:
            continue
        doses.append(DoseNutriente(
            name=nutriente.name,
            relay_number=nutriente.relay_number,
            dose_ml=round(dose_ml, 2),
            duration_seconds=duracao,
        ))

    if not doses:
        return None

    return PlanoDosagem(
        total_ml_per_liter=total,
        k=k,
        erro=erro,
        volume_total_ml=volume_total,
        doses=tuple(doses),
    )


def duracao_acionamento_manual(nutriente: NutrienteConfig, volume: float, flow_rate: float) -> Optional[int]:
    """
    Segundos de bomba para dosar a receita completa de um nutriente.

    Sem concentração definida (ml/L = 0) o relé continua acionável e usa
    DURACAO_ACIONAMENTO_PADRAO_S. Com concentração mas sem volume/vazão
    válidos não há duração calculável: None.
    """
    if nutriente.ml_per_liter <= 0:
        return DURACAO_ACIONAMENTO_PADRAO_S
    if volume <= 0 or flow_rate <= 0:
        return None
    return math.ceil(nutriente.ml_per_liter * volume / flow_rate)
