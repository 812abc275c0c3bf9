from fastapi import APIRouter, Depends

from hidrocontrole.core.deps import get_registro_sessoes
from hidrocontrole.core.erros import ErroPrecondicao
from hidrocontrole.schemas.comando import ComandoIn
from hidrocontrole.schemas.config_ec import ConfigECIn, ConfigECOut
from hidrocontrole.services import comandos
from hidrocontrole.services.reconciliacao import RegistroSessoes, SessaoDispositivo

router = APIRouter(prefix="/sessoes", tags=["sessoes"])


def _sessao(master_device_id: str, registro: RegistroSessoes) -> SessaoDispositivo:
    sessao = registro.obter(master_device_id)
    if sessao is None:
        raise ErroPrecondicao(
            f"Nenhuma sessão ativa para {master_device_id}",
            campo="master_device_id",
            codigo="sessao_nao_iniciada",
            status_code=404,
        )
    return sessao


@router.post("/{master_device_id}")
async def iniciar_sessao(master_device_id: str, registro: RegistroSessoes = Depends(get_registro_sessoes)):
    sessao = registro.iniciar(master_device_id)
    await sessao.sincronizar_tudo()
    return sessao.instantaneo()


@router.delete("/{master_device_id}")
async def encerrar_sessao(master_device_id: str, registro: RegistroSessoes = Depends(get_registro_sessoes)):
    return {"encerrada": await registro.parar(master_device_id)}


@router.get("/{master_device_id}")
async def instantaneo(master_device_id: str, registro: RegistroSessoes = Depends(get_registro_sessoes)):
    return _sessao(master_device_id, registro).instantaneo()


@router.post("/{master_device_id}/sincronizar")
async def sincronizar(master_device_id: str, registro: RegistroSessoes = Depends(get_registro_sessoes)):
    sessao = _sessao(master_device_id, registro)
    await sessao.sincronizar_tudo()
    return sessao.instantaneo()


@router.post("/{master_device_id}/comandos", status_code=201)
async def emitir_comando(
    master_device_id: str,
    pedido: ComandoIn,
    registro: RegistroSessoes = Depends(get_registro_sessoes),
):
    sessao = _sessao(master_device_id, registro)
    # parâmetros inválidos falham aqui, antes de qualquer efeito na sessão
    comandos.validar_parametros(pedido.model_copy(update={"master_device_id": master_device_id}))
    return await sessao.emitir_comando(pedido)


@router.post("/{master_device_id}/comandos/{command_id}/reverter")
async def reverter_comando(
    master_device_id: str,
    command_id: int,
    registro: RegistroSessoes = Depends(get_registro_sessoes),
):
    return {"revertido": _sessao(master_device_id, registro).reverter(command_id)}


@router.post("/{master_device_id}/config-ec", response_model=ConfigECOut)
async def salvar_config_ec(
    master_device_id: str,
    entrada: ConfigECIn,
    registro: RegistroSessoes = Depends(get_registro_sessoes),
):
    return await _sessao(master_device_id, registro).salvar_config_ec(entrada)
