"""Fixed phrases: instruction triggers, confirmation vocab and outbound texts."""
from salesbot.utils.text import contains_any_word, fold_lower, fold_upper

# Agent instructions (compared accent-stripped, upper case)
INSTRUCTION_OPEN_APP = "VOCE VAI BAIXAR O APLICATIVO, INSTALAR E ABRIR"
INSTRUCTION_SEND_PRINT = "ASSIM QUE ABRIR ME MANDA UM PRINT DO APLICATIVO ABERTO"
LAZER_INSTRUCTION_SCREEN = "CHEGANDO NESSA TELA VOCE ME AVISA AQUI"
LAZER_INSTRUCTION_PLAYLIST = "ASSIM QUE BAIXAR, CLICA NA OPCAO PLAYLIST E ME MANDA UMA FOTO"

YES_WORDS = ("sim", "ok", "positivo", "isso", "isso mesmo", "certo", "correto", "beleza", "ja")
NO_WORDS = (
    "nao", "n", "negativo", "nao quero", "nao obrigado", "n obrigado", "n quero", "nao quero mais", "nao consegui",
)
LAZER_CONFIRM_WORDS = ("consegui", "baixei", "abri", "abri agora", "abri o app", "abri o aplicativo", "sim")

MSG_ASK_PRINT = "Preciso do print do app aberto para liberar o teste. Pode me enviar a imagem da tela aberta, por favor?"
MSG_LIMIT_REACHED = "Aguarde um momento que um atendente vai falar com voce."
MSG_FALLBACK = "So um momento! Vou chamar um dos atendentes."
MSG_HANDOFF = "Um atendente vai responder em instantes. Obrigado!"
MSG_IBO_OK = "Seu teste foi gerado! Fecha o app e abre novamente."
MSG_OCR_FAILED_WAITING_AGENT = (
    "Ah sim! So um momento, vou ativar o seu teste aqui no sistema.\n"
    "Nao consegui achar o MAC na imagem, um atendente vai te responder agora."
)
MSG_IBO_REASK = "Marque a imagem com o MAC ou envie o MAC junto ao #IBO."
MSG_NO_CONTENT = "Nao encontrei conteudo para {keyword}."

MSG_LAZER_UNREADABLE = "Nao consegui ler a imagem. Envie uma foto mais nitida da tela da TV, por favor."
MSG_LAZER_CLICK_PLAYLIST = "Aperta na opcao Playlist/Lista e me envia a tela seguinte para liberar o teste."
MSG_LAZER_GENERATING = "Gerando o teste. Use o codigo enviado para preencher no app."
MSG_LAZER_WRONG_SCREEN = "Preciso da tela do app (menu ou tela de adicionar lista). Envie uma foto nitida, por favor."
MSG_LAZER_REMIND_CLICK = "Clica na opcao Playlist e me envia a tela seguinte, por favor."
MSG_LAZER_ASK_PHOTO = "Beleza! Me envia uma foto da tela da TV para seguirmos o fluxo."
MSG_LAZER_HOLD = "So um momento que ja te respondo, por favor."


def is_identifier_instruction(text: str) -> bool:
    norm = fold_upper(text)
    return INSTRUCTION_OPEN_APP in norm or INSTRUCTION_SEND_PRINT in norm


def needs_open_confirmation(text: str) -> bool:
    """The agent asked to open the app but not yet for the screenshot."""
    norm = fold_upper(text)
    return INSTRUCTION_OPEN_APP in norm and INSTRUCTION_SEND_PRINT not in norm


def is_lazer_instruction(text: str) -> bool:
    norm = fold_upper(text)
    return LAZER_INSTRUCTION_SCREEN in norm or LAZER_INSTRUCTION_PLAYLIST in norm


def is_affirmative(text: str) -> bool:
    return contains_any_word(fold_lower(text), YES_WORDS)


def is_negative(text: str) -> bool:
    return contains_any_word(fold_lower(text), NO_WORDS)


def is_lazer_confirmation(text: str) -> bool:
    return contains_any_word(fold_lower(text), LAZER_CONFIRM_WORDS)
