class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    EMBEDDINGS = API + "/embeddings"
    RETRIEVE = V1 + "/retrieve"
    CHAT = V1 + "/chat"
    CHAT_STREAM = V1 + "/chat/stream"
    REEMBED_ENTRY = V1 + "/knowledge/{entry_id}/reembed"
    CLEAR_CACHE = V1 + "/cache/clear"


APOLOGY_MESSAGES = {
    "en": "Sorry, I'm having trouble responding right now. Please try again.",
    "id": "Maaf, saya sedang mengalami kendala untuk menjawab. Silakan coba lagi.",
}

STILL_THINKING_MESSAGES = {
    "en": "I'm still thinking about that one. Please try asking again in a moment.",
    "id": "Saya masih memikirkan pertanyaan itu. Silakan coba tanyakan lagi sebentar lagi.",
}
