from typing import Any, Dict, Optional


class ErroHidro(Exception):
    """
    Base dos erros de domínio.

    Cada subclasse carrega o status HTTP equivalente e um `codigo`
    estável, para o cliente diferenciar a causa sem interpretar texto.
    """

    status_code = 500
    codigo = "erro_interno"

    def __init__(
        self,
        mensagem: str,
        campo: Optional[str] = None,
        codigo: Optional[str] = None,
        detalhes: Any = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(mensagem)
        self.mensagem = mensagem
        self.campo = campo
        self.detalhes = detalhes
        if codigo:
            self.codigo = codigo
        if status_code:
            self.status_code = status_code

    def como_dict(self) -> Dict[str, Any]:
        corpo: Dict[str, Any] = {"error": self.mensagem, "codigo": self.codigo}
        if self.campo:
            corpo["campo"] = self.campo
        if self.detalhes is not None:
            corpo["details"] = self.detalhes
        return corpo


class ErroValidacao(ErroHidro):
    """Entrada malformada; detectada antes de qualquer efeito colateral."""

    status_code = 400
    codigo = "validacao"


class ErroEstrutural(ErroValidacao):
    """Árvore de instruções impossível de interpretar (tipo/alvo desconhecido, ciclo)."""

    codigo = "instrucao_estrutural"


class ErroPrecondicao(ErroHidro):
    """Registro referenciado inexistente ou incompleto (problema de cadastro)."""

    status_code = 400
    codigo = "precondicao"


class ErroPersistencia(ErroHidro):
    status_code = 500
    codigo = "persistencia"
