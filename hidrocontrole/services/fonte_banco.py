import asyncio
from typing import Callable, Dict, List, Optional, TypeVar

from sqlalchemy.orm import Session

from hidrocontrole.db.session import SessionLocal
from hidrocontrole.schemas.comando import ComandoIn
from hidrocontrole.schemas.config_ec import ConfigECIn, ConfigECOut
from hidrocontrole.services import comandos, controle_ec, leituras, reles
from hidrocontrole.services.reconciliacao import FonteSessao

T = TypeVar("T")


class FonteBanco(FonteSessao):
    """
    Fonte da sessão apoiada no store. Cada chamada abre a sua própria
    Session numa thread, para não travar o event loop.
    """

    def __init__(self, fabrica_sessao: Callable[[], Session] = SessionLocal):
        self.fabrica_sessao = fabrica_sessao

    def _executar(self, funcao: Callable[[Session], T]) -> T:
        db = self.fabrica_sessao()
        try:
            return funcao(db)
        finally:
            db.close()

    async def _em_thread(self, funcao: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._executar, funcao)

    async def estados_reles(self, master_device_id: str) -> Dict[str, dict]:
        return await self._em_thread(lambda db: reles.estados_reles(db, master_device_id))

    async def acks(self, master_device_id: str, command_ids: List[int]) -> List[dict]:
        return await self._em_thread(
            lambda db: comandos.listar_acks(db, master_device_id, limit=len(command_ids), command_ids=command_ids)
        )

    async def slaves(self, master_device_id: str) -> List[dict]:
        return await self._em_thread(lambda db: reles.descobrir_slaves(db, master_device_id))

    async def ec_medido(self, master_device_id: str) -> Optional[float]:
        return await self._em_thread(lambda db: leituras.ultimo_ec(db, master_device_id))

    async def config_ec(self, master_device_id: str) -> ConfigECOut:
        return await self._em_thread(lambda db: controle_ec.obter_config(db, master_device_id))

    async def criar_comando(self, pedido: ComandoIn) -> dict:
        return await self._em_thread(
            lambda db: comandos.resposta_emissao(comandos.emitir_comando(db, pedido, created_by="sessao"))
        )

    async def salvar_config_ec(self, entrada: ConfigECIn) -> ConfigECOut:
        return await self._em_thread(lambda db: controle_ec.salvar_config(db, entrada))
