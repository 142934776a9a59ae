from clinic_api.whatsapp_service.main import run

if __name__ == "__main__":
    run()
