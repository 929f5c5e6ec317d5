"""English/French message catalog for user-facing text."""

from __future__ import annotations

from typing import Any, Dict


DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("en", "fr")


_MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "transcription.rate_limited": "Service is busy. Please try again in a moment.",
        "transcription.authorization": "Authentication error. Please contact support.",
        "transcription.transient": "The transcription service is temporarily unavailable. Please try again.",
        "transcription.unexpected": (
            "Could not transcribe audio. Please try speaking more clearly and ensure your microphone is working."
        ),
        "vision.default": "A beautiful food presentation",
        "approval.preview": (
            "🍽️ New content ready for approval!\n\n"
            "Platform: {platform}\n\n"
            "Caption:\n{caption}\n\n"
            "Hashtags: {tags}\n\n"
            "Reply with:\n"
            "✅ APPROVE - Post it now\n"
            "✏️ EDIT - Make changes\n"
            "❌ REJECT - Start over\n"
            "📱 VIEW - See full content\n\n"
            "ID: {short_id}"
        ),
        "approval.approved": "✅ Content approved and scheduled for publishing! 🚀",
        "approval.editing": "✏️ What would you like to change? Reply with your edits and we'll rework the post.",
        "approval.rejected": "❌ Content rejected and discarded. We'll create better options next time!",
        "approval.view": "📱 View your content at: {url}",
        "approval.help": "Please reply with: APPROVE, EDIT, REJECT, or VIEW (ID: {short_id})",
        "approval.regenerating": "🔄 Got it! Reworking your content with your changes...",
        "workflow.expired": "⌛ This request has expired. Send a new voice note to create fresh content.",
        "workflow.inactive": "ℹ️ That request was already {status}. Reply HELP for available commands.",
        "workflow.busy": "⏳ We're still processing your previous reply. Please try again in a moment.",
        "suggestions.menu": (
            "🌟 Good morning {name}!\n\n"
            "Today's content ideas for {restaurant}:\n\n"
            "{ideas}\n\n"
            "Reply with a number (1-{count}) to create that content, or CUSTOM for your own idea.\n\n"
            "💡 Tip: {tip}"
        ),
        "suggestions.selected": (
            "🎯 Great choice! Creating content for suggestion #{number}...\n\n"
            "We'll send it for approval as soon as it's ready!"
        ),
        "suggestions.out_of_range": "Please reply with a number between 1 and {count}, or CUSTOM.",
        "suggestions.custom": (
            "🎤 Ready for your own idea!\n\n"
            "Record a voice note at {url}/voice and describe your dish. We'll create the content for you."
        ),
        "general.help": (
            "🍽️ ChefSocial Commands:\n\n"
            "SUGGESTIONS - Get daily content ideas\n"
            "STATUS - Check your account status\n"
            "HELP - Show this menu\n\n"
            "Or visit: {url}"
        ),
        "general.status": (
            "📊 Account Status:\n\n"
            "Restaurant: {restaurant}\n"
            "Plan: {plan}\n"
            "Status: {status}\n"
            "Pending approvals: {pending}\n\n"
            "Manage at: {url}/dashboard"
        ),
        "general.not_registered": (
            "👋 This number isn't linked to a ChefSocial account yet. Sign up at {url} to get started."
        ),
        "general.error": "❌ Sorry, something went wrong. Please try again or contact support.",
        "status.approved": "approved",
        "status.rejected": "rejected",
        "status.expired": "expired",
        "status.active": "Active ✅",
        "status.inactive": "Inactive",
    },
    "fr": {
        "transcription.rate_limited": "Le service est occupé. Veuillez réessayer dans un instant.",
        "transcription.authorization": "Erreur d'authentification. Veuillez contacter le support.",
        "transcription.transient": "Le service de transcription est temporairement indisponible. Veuillez réessayer.",
        "transcription.unexpected": (
            "Impossible de transcrire l'audio. Essayez de parler plus clairement "
            "et vérifiez que votre microphone fonctionne."
        ),
        "vision.default": "Une belle présentation culinaire",
        "approval.preview": (
            "🍽️ Nouveau contenu prêt à approuver !\n\n"
            "Plateforme : {platform}\n\n"
            "Légende :\n{caption}\n\n"
            "Hashtags : {tags}\n\n"
            "Répondez avec :\n"
            "✅ OUI - Publier maintenant\n"
            "✏️ MODIFIER - Faire des changements\n"
            "❌ NON - Recommencer\n"
            "📱 VOIR - Voir le contenu complet\n\n"
            "ID : {short_id}"
        ),
        "approval.approved": "✅ Contenu approuvé et programmé pour publication ! 🚀",
        "approval.editing": "✏️ Que souhaitez-vous changer ? Répondez avec vos modifications et nous retravaillerons la publication.",
        "approval.rejected": "❌ Contenu rejeté et supprimé. Nous créerons de meilleures options la prochaine fois !",
        "approval.view": "📱 Voir votre contenu : {url}",
        "approval.help": "Répondez avec : OUI, MODIFIER, NON ou VOIR (ID : {short_id})",
        "approval.regenerating": "🔄 Compris ! Nous retravaillons votre contenu avec vos changements...",
        "workflow.expired": "⌛ Cette demande a expiré. Envoyez une nouvelle note vocale pour créer du contenu.",
        "workflow.inactive": "ℹ️ Cette demande a déjà été {status}. Répondez AIDE pour voir les commandes.",
        "workflow.busy": "⏳ Votre réponse précédente est en cours de traitement. Réessayez dans un instant.",
        "suggestions.menu": (
            "🌟 Bonjour {name} !\n\n"
            "Idées de contenu du jour pour {restaurant} :\n\n"
            "{ideas}\n\n"
            "Répondez avec un numéro (1-{count}) pour créer ce contenu, ou PERSO pour votre propre idée.\n\n"
            "💡 Conseil : {tip}"
        ),
        "suggestions.selected": (
            "🎯 Excellent choix ! Création du contenu pour la suggestion n°{number}...\n\n"
            "Nous vous l'enverrons pour approbation dès qu'il sera prêt !"
        ),
        "suggestions.out_of_range": "Répondez avec un numéro entre 1 et {count}, ou PERSO.",
        "suggestions.custom": (
            "🎤 Prêt pour votre idée !\n\n"
            "Enregistrez une note vocale sur {url}/voice et décrivez votre plat. Nous créerons le contenu pour vous."
        ),
        "general.help": (
            "🍽️ Commandes ChefSocial :\n\n"
            "IDÉES - Recevoir des idées de contenu\n"
            "STATUT - Voir l'état de votre compte\n"
            "AIDE - Afficher ce menu\n\n"
            "Ou visitez : {url}"
        ),
        "general.status": (
            "📊 État du compte :\n\n"
            "Restaurant : {restaurant}\n"
            "Forfait : {plan}\n"
            "Statut : {status}\n"
            "Approbations en attente : {pending}\n\n"
            "Gérer sur : {url}/dashboard"
        ),
        "general.not_registered": (
            "👋 Ce numéro n'est lié à aucun compte ChefSocial. Inscrivez-vous sur {url} pour commencer."
        ),
        "general.error": "❌ Désolé, une erreur s'est produite. Veuillez réessayer ou contacter le support.",
        "status.approved": "approuvée",
        "status.rejected": "rejetée",
        "status.expired": "expirée",
        "status.active": "Actif ✅",
        "status.inactive": "Inactif",
    },
}


def normalize_language(value: Any) -> str:
    """Map a language tag such as ``fr-FR`` to a supported catalog language."""

    normalized = str(value or "").strip().lower().replace("_", "-")
    primary = normalized.split("-", 1)[0]
    if primary in SUPPORTED_LANGUAGES:
        return primary
    return DEFAULT_LANGUAGE


def translate(key: str, language: str | None = None, **params: Any) -> str:
    catalog = _MESSAGES[normalize_language(language)]
    template = catalog.get(key)
    if template is None:
        template = _MESSAGES[DEFAULT_LANGUAGE][key]
    if not params:
        return template
    return template.format(**params)
