"""
Sessão de dispositivo: estado local otimista dos relés reconciliado por polling.

Cada master selecionado ganha uma `SessaoDispositivo` com os seus próprios
pollers (estados, slaves, ACKs e EC). O cache `estados` é escrito por:
  - emissão de comando (otimista)
  - poll de estados (merge por chave, nunca substituição total)
  - ACK completed (adota a ação comandada)

Regra de concorrência: vence o último a escrever em cada chave de relé.
Depois de `parar()`, resultados que chegarem atrasados são descartados.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from hidrocontrole.core.config import settings
from hidrocontrole.core.erros import ErroHidro
from hidrocontrole.schemas.comando import ComandoIn
from hidrocontrole.schemas.config_ec import ConfigECIn, ConfigECOut
from hidrocontrole.services.controle_ec import validar_config
from hidrocontrole.services.reles import chave_rele

logger = logging.getLogger(__name__)


class FonteSessao:
    """
    De onde a sessão lê e para onde escreve. A implementação real
    (`FonteBanco`) fala com o store; os testes usam uma fonte em memória.
    """

    async def estados_reles(self, master_device_id: str) -> Dict[str, dict]:
        raise NotImplementedError

    async def acks(self, master_device_id: str, command_ids: List[int]) -> List[dict]:
        raise NotImplementedError

    async def slaves(self, master_device_id: str) -> List[dict]:
        raise NotImplementedError

    async def ec_medido(self, master_device_id: str) -> Optional[float]:
        raise NotImplementedError

    async def config_ec(self, master_device_id: str) -> ConfigECOut:
        raise NotImplementedError

    async def criar_comando(self, pedido: ComandoIn) -> dict:
        raise NotImplementedError

    async def salvar_config_ec(self, entrada: ConfigECIn) -> ConfigECOut:
        raise NotImplementedError


def _estado_vazio(chave: str) -> dict:
    return {"chave": chave, "state": False, "has_timer": False, "remaining_time": 0}


class SessaoDispositivo:
    def __init__(
        self,
        master_device_id: str,
        fonte: FonteSessao,
        intervalos: Optional[Dict[str, float]] = None,
        janela_salvo_s: Optional[float] = None,
        relogio: Callable[[], float] = time.monotonic,
    ):
        self.master_device_id = master_device_id
        self.fonte = fonte
        self.intervalos = {
            "reles": settings.POLL_RELES_S,
            "slaves": settings.POLL_SLAVES_S,
            "acks": settings.POLL_ACKS_S,
            "ec": settings.POLL_EC_S,
        }
        self.intervalos.update(intervalos or {})
        self.janela_salvo_s = settings.JANELA_SALVO_S if janela_salvo_s is None else janela_salvo_s
        self.relogio = relogio

        self.estados: Dict[str, dict] = {}
        self.slaves: List[dict] = []
        self.erros: List[dict] = []
        self.config_ec: Optional[ConfigECOut] = None
        self.ec_medido: Optional[float] = None
        self.erro_ec: Optional[float] = None

        # command_id -> chave do relé. Só emissão insere e só ACK remove.
        self._comandos: Dict[int, str] = {}
        # estado antes do comando, para o chamador poder reverter após falha
        self._anteriores: Dict[int, bool] = {}

        self._salvo_em: Optional[float] = None
        self._ativa = False
        self._geracao = 0
        self._tarefas: List[asyncio.Task] = []

    # ---------- ciclo de vida ----------

    @property
    def ativa(self) -> bool:
        return self._ativa

    def iniciar(self) -> None:
        if self._ativa:
            logger.warning(f"[{self.master_device_id}] Sessão já iniciada")
            return
        self._ativa = True
        self._geracao += 1
        self._tarefas = [
            asyncio.create_task(self._loop("reles", self.sincronizar_reles)),
            asyncio.create_task(self._loop("slaves", self.descobrir_slaves)),
            asyncio.create_task(self._loop("acks", self.verificar_acks)),
            asyncio.create_task(self._loop("ec", self.atualizar_ec)),
        ]
        logger.info(f"[{self.master_device_id}] Sessão iniciada (intervalos={self.intervalos})")

    async def parar(self) -> None:
        if not self._ativa:
            return
        self._ativa = False
        self._geracao += 1
        for tarefa in self._tarefas:
            tarefa.cancel()
        await asyncio.gather(*self._tarefas, return_exceptions=True)
        self._tarefas = []
        logger.info(f"[{self.master_device_id}] Sessão encerrada")

    async def _loop(self, nome: str, passo: Callable[[], Awaitable[None]]) -> None:
        intervalo = self.intervalos[nome]
        while self._ativa:
            try:
                await asyncio.sleep(intervalo)
                if not self._ativa:
                    break
                await passo()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[{self.master_device_id}] Erro no poll de {nome}: {e}", exc_info=True)

    def _vigente(self, geracao: int) -> bool:
        """False se a sessão parou (ou reiniciou) enquanto a chamada estava em voo."""
        return geracao == self._geracao

    # ---------- pollers ----------

    async def sincronizar_reles(self) -> None:
        geracao = self._geracao
        frescos = await self.fonte.estados_reles(self.master_device_id)
        if not self._vigente(geracao):
            return
        for chave, estado in frescos.items():
            self.estados[chave] = {
                "chave": chave,
                "state": bool(estado.get("state")),
                "has_timer": bool(estado.get("has_timer")),
                "remaining_time": estado.get("remaining_time") or 0,
            }

    async def verificar_acks(self) -> None:
        if not self._comandos:
            return
        geracao = self._geracao
        acks = await self.fonte.acks(self.master_device_id, list(self._comandos))
        if not self._vigente(geracao):
            return

        for ack in acks:
            command_id = ack.get("command_id")
            chave = self._comandos.get(command_id)
            if chave is None:
                continue

            status = ack.get("status")
            if status == "completed":
                self.estados.setdefault(chave, _estado_vazio(chave))["state"] = ack.get("action") == "on"
                del self._comandos[command_id]
                self._anteriores.pop(command_id, None)
                logger.debug(f"[{self.master_device_id}] Comando {command_id} concluído em {chave}")
            elif status == "failed":
                del self._comandos[command_id]
                self.erros.append({
                    "command_id": command_id,
                    "chave": chave,
                    "action": ack.get("action"),
                    "error_message": ack.get("error_message"),
                    "estado_anterior": self._anteriores.pop(command_id, None),
                })
                logger.warning(
                    f"[{self.master_device_id}] Comando {command_id} falhou em {chave}: "
                    f"{ack.get('error_message') or 'sem detalhes'}"
                )

    async def descobrir_slaves(self) -> None:
        geracao = self._geracao
        slaves = await self.fonte.slaves(self.master_device_id)
        if not self._vigente(geracao):
            return
        self.slaves = slaves

    def _dentro_janela_salvo(self) -> bool:
        return self._salvo_em is not None and self.relogio() - self._salvo_em < self.janela_salvo_s

    def _recalcular_erro_ec(self) -> None:
        if self.ec_medido is None or self.config_ec is None:
            self.erro_ec = None
        else:
            self.erro_ec = self.ec_medido - self.config_ec.ec_setpoint

    async def atualizar_ec(self) -> None:
        geracao = self._geracao
        ec = await self.fonte.ec_medido(self.master_device_id)
        if not self._vigente(geracao):
            return
        if ec is not None:
            self.ec_medido = ec

        if not self._dentro_janela_salvo():
            config = await self.fonte.config_ec(self.master_device_id)
            if not self._vigente(geracao):
                return
            # um save pode ter acontecido enquanto a leitura estava em voo
            if not self._dentro_janela_salvo():
                self.config_ec = config

        # recalcula sempre, mesmo sem leitura nova: setpoint editado aparece na hora
        self._recalcular_erro_ec()

    async def sincronizar_tudo(self) -> None:
        """Uma rodada de todos os pollers, em sequência."""
        await self.sincronizar_reles()
        await self.descobrir_slaves()
        await self.verificar_acks()
        await self.atualizar_ec()

    # ---------- operações do chamador ----------

    async def emitir_comando(self, pedido: ComandoIn) -> dict:
        """Cria o comando, aplica o estado otimista e passa a acompanhar o ACK."""
        pedido = pedido.model_copy(update={"master_device_id": self.master_device_id})
        geracao = self._geracao
        resposta = await self.fonte.criar_comando(pedido)
        if not self._vigente(geracao):
            return resposta

        chave = chave_rele(pedido.slave_mac_address, pedido.relay_number)
        command_id = resposta["command_id"]
        estado = self.estados.setdefault(chave, _estado_vazio(chave))
        self._anteriores[command_id] = estado["state"]
        estado["state"] = pedido.action == "on"
        self._comandos[command_id] = chave
        return resposta

    def reverter(self, command_id: int) -> bool:
        """
        Volta a chave ao estado anterior a um comando que falhou. Só sob pedido.

        O erro é consumido. Se a chave já mudou depois da falha (outro
        comando pendente nela, ou poll com valor diferente do comandado),
        nada é escrito e retorna False.
        """
        erro = next((e for e in self.erros if e["command_id"] == command_id), None)
        if erro is None:
            return False
        self.erros.remove(erro)

        chave = erro["chave"]
        if erro["estado_anterior"] is None or chave in self._comandos.values():
            return False
        estado = self.estados.setdefault(chave, _estado_vazio(chave))
        if estado["state"] != (erro["action"] == "on"):
            logger.info(f"[{self.master_device_id}] {chave} mudou depois da falha do comando {command_id}; sem reversão")
            return False

        estado["state"] = erro["estado_anterior"]
        logger.info(f"[{self.master_device_id}] {chave} revertido após falha do comando {command_id}")
        return True

    async def salvar_config_ec(self, entrada: ConfigECIn) -> ConfigECOut:
        entrada = entrada.model_copy(update={"device_id": self.master_device_id})
        validar_config(entrada)

        anterior, salvo_em_anterior = self.config_ec, self._salvo_em
        self.config_ec = ConfigECOut(**entrada.model_dump())
        self._salvo_em = self.relogio()
        self._recalcular_erro_ec()

        try:
            salva = await self.fonte.salvar_config_ec(entrada)
        except ErroHidro:
            self.config_ec, self._salvo_em = anterior, salvo_em_anterior
            self._recalcular_erro_ec()
            raise
        self.config_ec = salva
        self._salvo_em = self.relogio()
        self._recalcular_erro_ec()
        return salva

    def comandos_pendentes(self) -> Dict[int, str]:
        return dict(self._comandos)

    def instantaneo(self) -> Dict[str, Any]:
        return {
            "master_device_id": self.master_device_id,
            "ativa": self._ativa,
            "estados": {chave: dict(estado) for chave, estado in self.estados.items()},
            "comandos_pendentes": self.comandos_pendentes(),
            "erros": list(self.erros),
            "slaves": list(self.slaves),
            "ec": {
                "medido": self.ec_medido,
                "setpoint": self.config_ec.ec_setpoint if self.config_ec else None,
                "erro": self.erro_ec,
            },
            "config_ec": self.config_ec.model_dump() if self.config_ec else None,
        }


class RegistroSessoes:
    """Uma sessão por master; vive no app.state, não no módulo."""

    def __init__(self, fabrica_fonte: Callable[[], FonteSessao]):
        self.fabrica_fonte = fabrica_fonte
        self._sessoes: Dict[str, SessaoDispositivo] = {}

    def obter(self, master_device_id: str) -> Optional[SessaoDispositivo]:
        return self._sessoes.get(master_device_id)

    def iniciar(self, master_device_id: str, **opcoes) -> SessaoDispositivo:
        sessao = self._sessoes.get(master_device_id)
        if sessao is None:
            sessao = SessaoDispositivo(master_device_id, self.fabrica_fonte(), **opcoes)
            self._sessoes[master_device_id] = sessao
        sessao.iniciar()
        return sessao

    async def parar(self, master_device_id: str) -> bool:
        sessao = self._sessoes.pop(master_device_id, None)
        if sessao is None:
            return False
        await sessao.parar()
        return True

    async def parar_todas(self) -> None:
        for master_device_id in list(self._sessoes):
            await self.parar(master_device_id)
